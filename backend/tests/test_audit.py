import sqlite3
from datetime import timedelta

from ats.schemas.audit import AuditEntryCreate, AuditFilters
from ats.services.identity_service import RequestMetadata
from ats.utils.timeutil import to_iso, utcnow

ADMIN = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}


def _entry(**overrides):
    data = {
        "actor_id": "admin-1",
        "action": "SETTINGS_CHANGED",
        "resource_type": "System",
        "resource_id": "settings",
    }
    data.update(overrides)
    return data


class TestAuditRecord:
    def test_malformed_entries_are_dropped(self, db, services):
        audit = services.audit
        assert audit.record({"action": "JOB_CREATED", "resource_type": "Job"}) is False
        assert audit.record(_entry(actor_id="")) is False
        assert audit.record(_entry(action="JOB_EXPLODED")) is False
        assert audit.record(_entry(resource_type="Planet")) is False
        assert audit.record({}) is False
        assert audit.query(db).pagination.total == 0

    def test_valid_entry_is_written(self, db, services):
        assert services.audit.record(_entry(), RequestMetadata(ip_address="10.0.0.1", user_agent="pytest")) is True
        page = services.audit.query(db)
        assert page.pagination.total == 1
        entry = page.entries[0]
        assert entry.status == "success"
        assert entry.severity == "low"
        assert entry.ip_address == "10.0.0.1"
        assert entry.user_agent == "pytest"

    def test_write_returns_new_id(self, db, services):
        entry_id = services.audit.write(AuditEntryCreate(actor_id="admin-1", action="EXPORT_DATA", resource_type="System"))
        assert entry_id is not None
        page = services.audit.query(db)
        assert [e.id for e in page.entries] == [entry_id]

    def test_recorded_entry_is_not_counted_as_dropped(self, db, services):
        assert services.audit.record(_entry()) is True
        assert services.audit.record_many([_entry(), _entry(actor_id="admin-2")]) == 2
        assert services.dispatcher.dropped == 0
        assert services.audit.query(db).pagination.total == 3

    def test_accepts_schema_objects(self, db, services):
        assert services.audit.record(AuditEntryCreate(**_entry(severity="critical"))) is True
        assert services.audit.query(db, AuditFilters(severity="critical")).pagination.total == 1

    def test_write_failure_is_swallowed(self, services, monkeypatch):
        def broken_factory():
            raise RuntimeError("db gone")

        monkeypatch.setattr(services.audit, "_session_factory", broken_factory)
        assert services.audit.record(_entry()) is True
        assert services.dispatcher.dropped == 1

    def test_record_many(self, db, services):
        accepted = services.audit.record_many([_entry(), _entry(actor_id="admin-2"), _entry(actor_id=None)])
        assert accepted == 2
        assert services.audit.query(db).pagination.total == 2


class TestAuditQuery:
    def test_filters_and_newest_first(self, db, services):
        audit = services.audit
        audit.record(_entry(actor_id="alice", action="JOB_CREATED", resource_type="Job", resource_id="j1"))
        audit.record(_entry(actor_id="bob", action="JOB_CLOSED", resource_type="Job", resource_id="j1", severity="medium"))
        audit.record(_entry(actor_id="alice", action="FIELD_ADDED", resource_type="JobField", resource_id="f1",
                            status="failure"))

        page = audit.query(db, AuditFilters(actor_id="alice"))
        assert [e.action for e in page.entries] == ["FIELD_ADDED", "JOB_CREATED"]

        assert audit.query(db, AuditFilters(action="JOB_CLOSED")).pagination.total == 1
        assert audit.query(db, AuditFilters(status="failure")).entries[0].resource_id == "f1"
        assert audit.query(db, AuditFilters(severity="medium")).entries[0].actor_id == "bob"
        assert audit.resource_history(db, "Job", "j1").pagination.total == 2

    def test_date_range(self, db, services):
        services.audit.record(_entry())
        now = utcnow()
        assert services.audit.query(db, AuditFilters(start=now - timedelta(minutes=5))).pagination.total == 1
        assert services.audit.query(db, AuditFilters(start=now + timedelta(minutes=5))).pagination.total == 0
        assert services.audit.query(db, AuditFilters(end=now - timedelta(minutes=5))).pagination.total == 0

    def test_pagination(self, db, services):
        for i in range(5):
            services.audit.record(_entry(resource_id=f"r{i}"))
        page = services.audit.query(db, page=2, limit=2)
        assert page.pagination.total == 5
        assert page.pagination.pages == 3
        assert page.pagination.page == 2
        assert len(page.entries) == 2
        assert len(services.audit.query(db, page=3, limit=2).entries) == 1

    def test_audit_route(self, client, services):
        services.audit.record(_entry(actor_id="alice"))
        services.audit.record(_entry(actor_id="bob"))
        r = client.get("/api/v1/audit", params={"actor_id": "bob"}, headers=ADMIN)
        assert r.status_code == 200
        data = r.json()
        assert data["pagination"]["total"] == 1
        assert data["entries"][0]["actor_id"] == "bob"

        r = client.get("/api/v1/audit", headers={"X-Actor-Id": "bob"})
        assert r.status_code == 403


class TestAuditStorage:
    def test_entries_are_immutable(self, db, services, test_settings):
        services.audit.record(_entry())
        conn = sqlite3.connect(str(test_settings.db_path))
        try:
            conn.execute("UPDATE audit_entries SET actor_id = 'mallory'")
            raised = False
        except sqlite3.DatabaseError:
            raised = True
        finally:
            conn.close()
        assert raised
        assert services.audit.query(db).entries[0].actor_id == "admin-1"

    def test_expired_entries_are_purged(self, db, services, test_settings):
        services.audit.record(_entry(resource_id="fresh"))
        old = to_iso(utcnow() - timedelta(days=91))
        conn = sqlite3.connect(str(test_settings.db_path))
        conn.execute(
            "INSERT INTO audit_entries (id, actor_id, action, resource_type, created_at) "
            "VALUES ('old-1', 'admin-1', 'EXPORT_DATA', 'System', ?)",
            (old,),
        )
        conn.commit()
        conn.close()

        page = services.audit.query(db)
        assert [e.resource_id for e in page.entries] == ["fresh"]
