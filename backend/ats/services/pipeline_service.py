import logging
import uuid

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ats.constants import PIPELINE_STAGES, TERMINAL_STAGES
from ats.errors import Forbidden, Internal, InvalidOperation, NotFound, ValidationError
from ats.models.application import Application, StageHistory
from ats.schemas.pipeline import (
    HistoryEntryResponse,
    KanbanResponse,
    MoveStageResponse,
    PipelineStatsResponse,
    StageHistoryResponse,
    StageStat,
)
from ats.services.audit_service import AuditTrail
from ats.services.identity_service import Principal, RequestMetadata
from ats.services.job_service import JobCatalog
from ats.services.kanban_service import KanbanProjector
from ats.utils.timeutil import days_since, now_iso, utcnow

logger = logging.getLogger("ats.pipeline")

MAX_NOTES_LENGTH = 500

STATS_NOTE = (
    "average_days_in_stage is measured from when each application entered its "
    "current stage until now, over applications currently in that stage. It is "
    "not a historical average of time spent in the stage."
)


class PipelineEngine:
    """Stage state machine for applications.

    ``hired`` and ``rejected`` are terminal. Any other stage can move to any
    stage except itself, in either direction. A closed job only allows
    moves to ``rejected``.

    Every stage move is a read-check-write on the application row. The row's
    ``version`` column turns a write based on a stale read into a
    ``StaleDataError``; the move is then re-read, re-checked and retried.
    """

    def __init__(self, jobs: JobCatalog, kanban: KanbanProjector, audit: AuditTrail, max_retries: int = 3):
        self.jobs = jobs
        self.kanban = kanban
        self.audit = audit
        self.max_retries = max_retries

    def move_stage(
        self,
        db: Session,
        application_id: str,
        target: str,
        actor: Principal,
        notes: str | None = None,
        metadata: RequestMetadata | None = None,
    ) -> MoveStageResponse:
        if target not in PIPELINE_STAGES:
            raise ValidationError(
                f"Unknown stage '{target}'",
                context={"fields": {"stage": f"must be one of {', '.join(PIPELINE_STAGES)}"}, "target_stage": target},
            )
        if notes is not None and len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(
                f"Notes cannot exceed {MAX_NOTES_LENGTH} characters",
                context={"fields": {"notes": f"max {MAX_NOTES_LENGTH} characters"}},
            )

        for attempt in range(self.max_retries + 1):
            app = self._get(db, application_id)
            job = app.job
            if job is None:
                raise NotFound("Job not found", context={"job_id": app.job_id})
            previous = app.stage
            self._check_transition(job.status, previous, target)

            now = now_iso()
            seq = max((h.seq for h in app.history), default=0) + 1
            app.history.append(
                StageHistory(
                    id=str(uuid.uuid4()),
                    seq=seq,
                    stage=target,
                    changed_by=actor.id,
                    notes=notes or f"Moved from {previous} to {target}",
                    changed_at=now,
                )
            )
            app.stage = target
            app.stage_entered_at = now
            app.updated_at = now
            try:
                db.commit()
            except (StaleDataError, IntegrityError):
                db.rollback()
                logger.warning(
                    "Concurrent update on application %s (attempt %d of %d)",
                    application_id, attempt + 1, self.max_retries + 1,
                )
                continue
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Could not move application %s", application_id)
                raise Internal("Could not save the stage change") from exc
            break
        else:
            raise Internal(
                "Application is being modified concurrently, try again",
                code="conflict",
                context={"application_id": application_id},
            )

        db.refresh(app)
        logger.info("Application %s moved %s -> %s by %s", app.id, previous, target, actor.id)
        self.audit.record({
            "actor_id": actor.id,
            "action": "STAGE_CHANGED",
            "resource_type": "Application",
            "resource_id": app.id,
            "details": {
                "from": previous,
                "to": target,
                "job_title": job.title,
                "applicant_name": app.name,
                "notes": notes,
            },
            "severity": "medium" if target == "rejected" else "low",
        }, metadata)

        return MoveStageResponse(
            application_id=app.id,
            previous_stage=previous,
            stage=app.stage,
            stage_entered_at=app.stage_entered_at,
            changed_by=actor.id,
            history_length=len(app.history),
        )

    def get_stage_history(self, db: Session, application_id: str, requester: Principal) -> StageHistoryResponse:
        app = self._get(db, application_id)
        if not (requester.is_admin or requester.id == app.applicant_id):
            raise Forbidden(
                "You cannot view this application's history",
                context={"application_id": application_id},
            )
        return StageHistoryResponse(
            application_id=app.id,
            current_stage=app.stage,
            history=[
                HistoryEntryResponse(
                    seq=h.seq,
                    stage=h.stage,
                    changed_by=h.changed_by,
                    notes=h.notes,
                    changed_at=h.changed_at,
                )
                for h in sorted(app.history, key=lambda h: h.seq, reverse=True)
            ],
        )

    def get_kanban(self, db: Session, job_id: str | None = None) -> KanbanResponse:
        return self.kanban.project(db, job_id)

    def get_pipeline_stats(self, db: Session, job_id: str) -> PipelineStatsResponse:
        job = self.jobs.get_job(db, job_id)
        rows = (
            db.query(Application.stage, Application.stage_entered_at)
            .filter(Application.job_id == job.id)
            .all()
        )

        now = utcnow()
        days_by_stage = {stage: [] for stage in PIPELINE_STAGES}
        for stage, entered_at in rows:
            days_by_stage[stage].append(days_since(entered_at, now))

        breakdown = []
        for stage in PIPELINE_STAGES:
            days = days_by_stage[stage]
            breakdown.append(
                StageStat(
                    stage=stage,
                    count=len(days),
                    average_days_in_stage=round(sum(days) / len(days), 1) if days else 0.0,
                )
            )
        return PipelineStatsResponse(
            job_id=job.id,
            job_title=job.title,
            total_applications=len(rows),
            breakdown=breakdown,
            note=STATS_NOTE,
        )

    @staticmethod
    def _check_transition(job_status: str, current: str, target: str):
        context = {"current_stage": current, "target_stage": target}
        if job_status == "closed" and target != "rejected":
            raise InvalidOperation(
                "This job is closed; applications can only be rejected",
                code="job-closed",
                context=context,
            )
        if target == current:
            raise InvalidOperation(f"Application is already in {current}", code="no-op", context=context)
        if current in TERMINAL_STAGES:
            raise InvalidOperation(
                f"Application is {current}; no further moves are allowed",
                code="terminal",
                context=context,
            )

    def _get(self, db: Session, application_id: str) -> Application:
        app = db.query(Application).filter(Application.id == application_id).first()
        if not app:
            raise NotFound("Application not found", context={"application_id": application_id})
        return app
