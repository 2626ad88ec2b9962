from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from ats.config import Settings
from ats.database import get_db, init_db, make_session_factory
from ats.dependencies import get_services
from ats.main import app
from ats.schemas.field import FieldCreate
from ats.schemas.job import JobCreate
from ats.services.container import Services
from ats.services.identity_service import Principal
from ats.utils.timeutil import utcnow


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "ApplicantTracking"
    data_path.mkdir()
    return data_path


@pytest.fixture
def test_settings(tmp_data):
    return Settings(data_path=tmp_data)


@pytest.fixture
def session_factory(test_settings):
    init_db(test_settings.db_path)
    return make_session_factory(test_settings.db_path)


@pytest.fixture
def services(test_settings, session_factory):
    # Called outside a request, side effects run inline.
    return Services(test_settings, session_factory)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory, services):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_services] = lambda: services
    c = TestClient(app)
    yield c
    app.dependency_overrides.clear()


@pytest.fixture
def admin():
    return Principal(id="admin-1", name="Ada Admin", role="admin")


@pytest.fixture
def open_job(db, services, admin):
    """An active job with a required file field, an optional text field and a dropdown."""
    job = services.jobs.create_job(db, JobCreate(
        title="Backend Engineer",
        description="Build and run the hiring platform.",
        deadline=utcnow() + timedelta(days=30),
    ), admin)
    services.schema.add_field(db, job.id, FieldCreate(type="file", question="CV", required=True, order=1), admin)
    services.schema.add_field(db, job.id, FieldCreate(type="short_text", question="Note", order=2), admin)
    services.schema.add_field(db, job.id, FieldCreate(
        type="dropdown", question="Seniority", options=["junior", "senior"], order=3,
    ), admin)
    services.jobs.set_status(db, job.id, "active", admin)
    return job
