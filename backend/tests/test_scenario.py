from datetime import timedelta

from ats.utils.timeutil import to_iso, utcnow

ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Name": "Ada Admin", "X-Actor-Role": "admin"}
APPLICANT = {"name": "A", "email": "a@x.com", "phone": "1", "country": "X", "city": "Y"}


class TestHiringScenario:
    def _setup_job(self, client):
        r = client.post("/api/v1/jobs", json={
            "title": "J",
            "description": "Scenario job",
            "deadline": to_iso(utcnow() + timedelta(days=14)),
        }, headers=ADMIN)
        assert r.json()["status"] == "draft"
        job_id = r.json()["id"]

        cv = client.post(f"/api/v1/jobs/{job_id}/fields", json={
            "type": "file", "question": "CV", "required": True, "order": 1,
        }, headers=ADMIN).json()["id"]
        client.post(f"/api/v1/jobs/{job_id}/fields", json={
            "type": "short_text", "question": "Note", "order": 2,
        }, headers=ADMIN)

        r = client.patch(f"/api/v1/jobs/{job_id}/status", json={"status": "active"}, headers=ADMIN)
        assert r.json()["status"] == "active"
        assert r.json()["has_schema"] is True
        return job_id, cv

    def _move(self, client, app_id, stage):
        return client.patch(
            f"/api/v1/pipeline/applications/{app_id}/move-stage", json={"stage": stage}, headers=ADMIN,
        )

    def test_apply_interview_hire(self, client):
        job_id, cv = self._setup_job(client)

        r = client.post(f"/api/v1/public/jobs/{job_id}/apply", json={
            "applicant": APPLICANT,
            "answers": [{"field_id": cv, "value": "url"}],
        })
        assert r.status_code == 201
        assert r.json()["stage"] == "applied"
        app_id = r.json()["application_id"]

        history = client.get(f"/api/v1/pipeline/applications/{app_id}/stage-history", headers=ADMIN).json()
        assert len(history["history"]) == 1

        r = self._move(client, app_id, "interview")
        assert r.status_code == 200
        assert r.json()["history_length"] == 2

        r = self._move(client, app_id, "hired")
        assert r.status_code == 200
        assert r.json()["history_length"] == 3

        r = self._move(client, app_id, "rejected")
        assert r.status_code == 400
        assert r.json()["code"] == "terminal"

        history = client.get(f"/api/v1/pipeline/applications/{app_id}/stage-history", headers=ADMIN).json()
        assert history["current_stage"] == "hired"
        assert [h["stage"] for h in history["history"]] == ["hired", "interview", "applied"]

        r = client.get(f"/api/v1/audit/Application/{app_id}", headers=ADMIN)
        actions = [e["action"] for e in r.json()["entries"]]
        assert actions.count("STAGE_CHANGED") == 2
        assert "APPLICATION_SUBMITTED" in actions

    def test_second_submission_is_duplicate(self, client):
        job_id, cv = self._setup_job(client)
        body = {"applicant": APPLICANT, "answers": [{"field_id": cv, "value": "url"}]}

        assert client.post(f"/api/v1/public/jobs/{job_id}/apply", json=body).status_code == 201
        r = client.post(f"/api/v1/public/jobs/{job_id}/apply", json=body)
        assert r.status_code == 409
        assert r.json()["code"] == "duplicate"

        r = client.get(f"/api/v1/jobs/{job_id}/applications", headers=ADMIN)
        assert r.json()["total"] == 1

    def test_health(self, client):
        r = client.get("/health")
        assert r.json()["status"] == "ok"
