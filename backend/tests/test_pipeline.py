from datetime import timedelta

import pytest

from ats.constants import PIPELINE_STAGES, TERMINAL_STAGES
from ats.errors import Forbidden, Internal, InvalidOperation, NotFound, ValidationError
from ats.models.application import Application
from ats.schemas.application import AnswerIn, ApplicantInfo
from ats.services.identity_service import Principal
from ats.services.pipeline_service import PipelineEngine
from ats.utils.timeutil import to_iso, utcnow

NON_TERMINAL = [s for s in PIPELINE_STAGES if s not in TERMINAL_STAGES]


@pytest.fixture
def submit(db, services, open_job):
    cv = next(f for f in services.schema.get_schema(db, open_job.id) if f.field_type == "file")
    counter = iter(range(1000))

    def _submit(principal=None):
        n = next(counter)
        applicant = ApplicantInfo(name=f"Applicant {n}", email=f"a{n}@x.com", phone="1", country="X", city="Y")
        return services.intake.submit(
            db, open_job.id, applicant, [AnswerIn(field_id=cv.id, value="url")], principal=principal,
        ).application_id

    return _submit


def _move_to(db, services, admin, app_id, stage):
    if stage != "applied":
        services.pipeline.move_stage(db, app_id, stage, admin)


class TestMoveStage:
    def test_move_appends_history(self, db, services, admin, submit):
        app_id = submit()
        result = services.pipeline.move_stage(db, app_id, "interview", admin, notes="Strong CV")
        assert result.previous_stage == "applied"
        assert result.stage == "interview"
        assert result.history_length == 2

        history = services.pipeline.get_stage_history(db, app_id, admin)
        assert history.current_stage == "interview"
        assert history.history[0].stage == "interview"
        assert history.history[0].notes == "Strong CV"
        assert history.history[0].changed_by == "admin-1"
        assert history.history[1].stage == "applied"

    def test_default_notes(self, db, services, admin, submit):
        app_id = submit()
        services.pipeline.move_stage(db, app_id, "screening", admin)
        history = services.pipeline.get_stage_history(db, app_id, admin)
        assert history.history[0].notes == "Moved from applied to screening"

    @pytest.mark.parametrize("stage", PIPELINE_STAGES)
    def test_same_stage_is_noop(self, db, services, admin, submit, stage):
        app_id = submit()
        _move_to(db, services, admin, app_id, stage)
        with pytest.raises(InvalidOperation) as exc:
            services.pipeline.move_stage(db, app_id, stage, admin)
        assert exc.value.code == "no-op"

    @pytest.mark.parametrize("stage", NON_TERMINAL)
    def test_reject_from_any_open_stage(self, db, services, admin, submit, stage):
        app_id = submit()
        _move_to(db, services, admin, app_id, stage)
        result = services.pipeline.move_stage(db, app_id, "rejected", admin)
        assert result.stage == "rejected"

    @pytest.mark.parametrize("terminal", TERMINAL_STAGES)
    @pytest.mark.parametrize("target", PIPELINE_STAGES)
    def test_terminal_stages_are_absorbing(self, db, services, admin, submit, terminal, target):
        if target == terminal:
            pytest.skip("covered by the no-op case")
        app_id = submit()
        services.pipeline.move_stage(db, app_id, terminal, admin)
        with pytest.raises(InvalidOperation) as exc:
            services.pipeline.move_stage(db, app_id, target, admin)
        assert exc.value.code == "terminal"
        assert exc.value.context == {"current_stage": terminal, "target_stage": target}

    def test_backward_moves_allowed(self, db, services, admin, submit):
        app_id = submit()
        services.pipeline.move_stage(db, app_id, "offer", admin)
        result = services.pipeline.move_stage(db, app_id, "screening", admin)
        assert result.stage == "screening"

    def test_closed_job_only_rejects(self, db, services, admin, submit, open_job):
        app_id = submit()
        services.jobs.set_status(db, open_job.id, "closed", admin)
        with pytest.raises(InvalidOperation) as exc:
            services.pipeline.move_stage(db, app_id, "interview", admin)
        assert exc.value.code == "job-closed"
        assert services.pipeline.move_stage(db, app_id, "rejected", admin).stage == "rejected"

    def test_unknown_stage(self, db, services, admin, submit):
        app_id = submit()
        with pytest.raises(ValidationError):
            services.pipeline.move_stage(db, app_id, "limbo", admin)

    def test_notes_length_limit(self, db, services, admin, submit):
        app_id = submit()
        with pytest.raises(ValidationError):
            services.pipeline.move_stage(db, app_id, "screening", admin, notes="x" * 501)
        assert services.pipeline.move_stage(db, app_id, "screening", admin, notes="x" * 500).stage == "screening"

    def test_missing_application(self, db, services, admin):
        with pytest.raises(NotFound):
            services.pipeline.move_stage(db, "nope", "screening", admin)

    def test_history_last_entry_matches_stage(self, db, services, admin, submit):
        app_id = submit()
        for stage in ("screening", "interview", "screening", "assessment", "offer", "hired"):
            services.pipeline.move_stage(db, app_id, stage, admin)
            app = db.query(Application).filter(Application.id == app_id).one()
            assert app.history[-1].stage == app.stage == stage
            assert [h.seq for h in app.history] == list(range(1, len(app.history) + 1))
        assert len(app.history) == 7

    def test_stage_change_audit_severity(self, db, services, admin, submit):
        first, second = submit(), submit()
        services.pipeline.move_stage(db, first, "screening", admin)
        services.pipeline.move_stage(db, second, "rejected", admin)

        low = services.audit.resource_history(db, "Application", first).entries[0]
        assert low.action == "STAGE_CHANGED"
        assert low.severity == "low"
        assert low.details["from"] == "applied"
        assert low.details["to"] == "screening"

        medium = services.audit.resource_history(db, "Application", second).entries[0]
        assert medium.severity == "medium"


class TestConcurrentMoves:
    def test_stale_write_is_retried(self, session_factory, services, admin, submit):
        app_id = submit()
        stale_session = session_factory()
        other_session = session_factory()
        try:
            stale = stale_session.query(Application).filter(Application.id == app_id).one()
            assert stale.stage == "applied"
            assert len(stale.history) == 1

            services.pipeline.move_stage(other_session, app_id, "screening", admin)

            # The first attempt writes from the stale read and must be retried.
            result = services.pipeline.move_stage(stale_session, app_id, "interview", admin)
            assert result.previous_stage == "screening"
            assert result.history_length == 3
        finally:
            stale_session.close()
            other_session.close()

        check = session_factory()
        app = check.query(Application).filter(Application.id == app_id).one()
        assert app.stage == "interview"
        assert [h.stage for h in app.history] == ["applied", "screening", "interview"]
        check.close()

    def test_retry_rechecks_rules(self, session_factory, services, admin, submit, caplog):
        app_id = submit()
        stale_session = session_factory()
        other_session = session_factory()
        try:
            stale = stale_session.query(Application).filter(Application.id == app_id).one()
            assert len(stale.history) == 1
            services.pipeline.move_stage(other_session, app_id, "hired", admin)
            with pytest.raises(InvalidOperation) as exc:
                services.pipeline.move_stage(stale_session, app_id, "interview", admin)
            assert exc.value.code == "terminal"
            assert "Concurrent update" in caplog.text
        finally:
            stale_session.close()
            other_session.close()

    def test_conflict_after_retries_exhausted(self, session_factory, services, admin, submit):
        engine = PipelineEngine(services.jobs, services.kanban, services.audit, max_retries=0)
        app_id = submit()
        stale_session = session_factory()
        other_session = session_factory()
        try:
            stale = stale_session.query(Application).filter(Application.id == app_id).one()
            assert len(stale.history) == 1
            services.pipeline.move_stage(other_session, app_id, "screening", admin)
            with pytest.raises(Internal) as exc:
                engine.move_stage(stale_session, app_id, "interview", admin)
            assert exc.value.code == "conflict"
        finally:
            stale_session.close()
            other_session.close()

        check = session_factory()
        app = check.query(Application).filter(Application.id == app_id).one()
        assert app.stage == "screening"
        assert len(app.history) == 2
        check.close()


class TestStageHistoryAccess:
    def test_owner_can_read_history(self, db, services, submit):
        owner = Principal(id="user-1")
        app_id = submit(principal=owner)
        history = services.pipeline.get_stage_history(db, app_id, owner)
        assert [h.stage for h in history.history] == ["applied"]

    def test_other_applicant_forbidden(self, db, services, submit):
        app_id = submit(principal=Principal(id="user-1"))
        with pytest.raises(Forbidden):
            services.pipeline.get_stage_history(db, app_id, Principal(id="user-2"))


class TestPipelineStats:
    def test_stats_cover_every_stage(self, db, services, admin, submit, open_job):
        a, b, c = submit(), submit(), submit()
        services.pipeline.move_stage(db, b, "interview", admin)
        services.pipeline.move_stage(db, c, "interview", admin)

        app = db.query(Application).filter(Application.id == b).one()
        app.stage_entered_at = to_iso(utcnow() - timedelta(days=3))
        db.commit()

        stats = services.pipeline.get_pipeline_stats(db, open_job.id)
        assert stats.total_applications == 3
        assert [s.stage for s in stats.breakdown] == list(PIPELINE_STAGES)
        by_stage = {s.stage: s for s in stats.breakdown}
        assert by_stage["applied"].count == 1
        assert by_stage["interview"].count == 2
        assert by_stage["interview"].average_days_in_stage == 1.5
        assert by_stage["offer"].count == 0
        assert by_stage["offer"].average_days_in_stage == 0
        assert "current stage" in stats.note

    def test_stats_missing_job(self, db, services):
        with pytest.raises(NotFound):
            services.pipeline.get_pipeline_stats(db, "nope")


class TestPipelineAPI:
    ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}

    def test_move_stage_route(self, client, submit):
        app_id = submit()
        r = client.patch(f"/api/v1/pipeline/applications/{app_id}/move-stage", json={
            "stage": "screening",
        }, headers=self.ADMIN)
        assert r.status_code == 200
        assert r.json()["history_length"] == 2

        r = client.patch(f"/api/v1/pipeline/applications/{app_id}/move-stage", json={
            "stage": "screening",
        }, headers=self.ADMIN)
        assert r.status_code == 400
        body = r.json()
        assert body["success"] is False
        assert body["code"] == "no-op"
        assert body["context"]["current_stage"] == "screening"

    def test_move_stage_requires_admin(self, client, submit):
        app_id = submit(principal=Principal(id="user-1"))
        r = client.patch(f"/api/v1/pipeline/applications/{app_id}/move-stage", json={
            "stage": "hired",
        }, headers={"X-Actor-Id": "user-1"})
        assert r.status_code == 403

    def test_history_route(self, client, submit):
        app_id = submit(principal=Principal(id="user-1"))
        r = client.get(f"/api/v1/pipeline/applications/{app_id}/stage-history", headers={"X-Actor-Id": "user-1"})
        assert r.status_code == 200
        assert r.json()["current_stage"] == "applied"

    def test_stats_route(self, client, submit, open_job):
        submit()
        r = client.get(f"/api/v1/pipeline/jobs/{open_job.id}/stats", headers=self.ADMIN)
        assert r.status_code == 200
        assert r.json()["total_applications"] == 1
