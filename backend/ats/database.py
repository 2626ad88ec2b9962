import sqlite3
from pathlib import Path
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from ats.config import settings


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragmas(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def get_engine(db_path: Path | None = None):
    path = db_path or settings.db_path
    engine = create_engine(
        f"sqlite:///{path}",
        connect_args={"check_same_thread": False},
    )
    event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


def make_session_factory(db_path: Path | None = None) -> sessionmaker:
    return sessionmaker(bind=get_engine(db_path), autoflush=False, autocommit=False)


SessionLocal = make_session_factory()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SCHEMA_SQL = """\
-- ============================================================
-- JOBS
-- ============================================================
CREATE TABLE IF NOT EXISTS jobs (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    description TEXT NOT NULL,
    deadline    TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'draft'
                CHECK(status IN ('draft','active','closed')),
    created_by  TEXT NOT NULL,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_deadline ON jobs(deadline);

-- ============================================================
-- FORM FIELDS (one schema per job)
-- ============================================================
CREATE TABLE IF NOT EXISTS form_fields (
    id            TEXT PRIMARY KEY,
    job_id        TEXT NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
    field_type    TEXT NOT NULL
                  CHECK(field_type IN ('short_text','long_text','single_choice',
                                       'multi_choice','dropdown','file','rating',
                                       'date','time')),
    question      TEXT NOT NULL,
    options       TEXT NOT NULL DEFAULT '[]',
    required      INTEGER NOT NULL DEFAULT 0,
    display_order INTEGER NOT NULL DEFAULT 1,
    seq           INTEGER NOT NULL,
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_form_fields_job ON form_fields(job_id, display_order, seq);

-- ============================================================
-- APPLICATIONS
-- ============================================================
CREATE TABLE IF NOT EXISTS applications (
    id               TEXT PRIMARY KEY,
    job_id           TEXT NOT NULL REFERENCES jobs(id),
    applicant_id     TEXT NOT NULL,
    name             TEXT NOT NULL,
    email            TEXT NOT NULL,
    phone            TEXT NOT NULL,
    country          TEXT NOT NULL,
    city             TEXT NOT NULL,
    stage            TEXT NOT NULL DEFAULT 'applied'
                     CHECK(stage IN ('applied','screening','interview','assessment',
                                     'offer','hired','rejected')),
    stage_entered_at TEXT NOT NULL,
    is_saved         INTEGER NOT NULL DEFAULT 0,
    is_invited       INTEGER NOT NULL DEFAULT 0,
    is_accepted      INTEGER NOT NULL DEFAULT 0,
    attachment_url   TEXT,
    version          INTEGER NOT NULL DEFAULT 1,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    UNIQUE (job_id, email)
);

CREATE INDEX IF NOT EXISTS idx_applications_job_stage ON applications(job_id, stage);
CREATE INDEX IF NOT EXISTS idx_applications_applicant ON applications(applicant_id);

CREATE TABLE IF NOT EXISTS answers (
    id             TEXT PRIMARY KEY,
    application_id TEXT NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
    field_id       TEXT NOT NULL,
    value          TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_answers_application ON answers(application_id);

CREATE TABLE IF NOT EXISTS stage_history (
    id             TEXT PRIMARY KEY,
    application_id TEXT NOT NULL REFERENCES applications(id) ON DELETE CASCADE,
    seq            INTEGER NOT NULL,
    stage          TEXT NOT NULL,
    changed_by     TEXT NOT NULL,
    notes          TEXT,
    changed_at     TEXT NOT NULL,
    UNIQUE (application_id, seq)
);

-- ============================================================
-- AUDIT TRAIL
-- ============================================================
CREATE TABLE IF NOT EXISTS audit_entries (
    id            TEXT PRIMARY KEY,
    actor_id      TEXT NOT NULL,
    action        TEXT NOT NULL,
    resource_type TEXT NOT NULL,
    resource_id   TEXT,
    details       TEXT NOT NULL DEFAULT '{}',
    status        TEXT NOT NULL DEFAULT 'success'
                  CHECK(status IN ('success','failure','warning')),
    severity      TEXT NOT NULL DEFAULT 'low'
                  CHECK(severity IN ('low','medium','high','critical')),
    ip_address    TEXT,
    user_agent    TEXT,
    created_at    TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_audit_resource ON audit_entries(resource_type, resource_id, created_at);
CREATE INDEX IF NOT EXISTS idx_audit_actor ON audit_entries(actor_id, created_at);
CREATE INDEX IF NOT EXISTS idx_audit_action ON audit_entries(action, created_at);
CREATE INDEX IF NOT EXISTS idx_audit_created ON audit_entries(created_at);
"""

# 90-day retention lives in the store, not in application code.
RETENTION_TRIGGERS_SQL = """\
CREATE TRIGGER IF NOT EXISTS audit_entries_retention AFTER INSERT ON audit_entries BEGIN
    DELETE FROM audit_entries
    WHERE created_at < strftime('%Y-%m-%dT%H:%M:%fZ', 'now', '-90 days');
END;

CREATE TRIGGER IF NOT EXISTS audit_entries_no_update BEFORE UPDATE ON audit_entries BEGIN
    SELECT RAISE(ABORT, 'audit entries are immutable');
END;
"""


MIGRATIONS = [
    # v0.2: operator flags on applications
    "ALTER TABLE applications ADD COLUMN is_accepted INTEGER NOT NULL DEFAULT 0",
]


def init_db(db_path: Path | None = None):
    path = db_path or settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA_SQL)
    conn.executescript(RETENTION_TRIGGERS_SQL)
    # Run migrations idempotently (ALTER TABLE fails if column exists)
    for migration in MIGRATIONS:
        try:
            conn.execute(migration)
            conn.commit()
        except sqlite3.OperationalError:
            pass  # column already exists
    conn.close()
