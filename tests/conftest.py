import datetime
import os

import pytest

# keep the module-level engine away from a real PostgreSQL server
os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402

from visitor_checkin.database import create_session_factory, get_db  # noqa: E402
from visitor_checkin.main import app, get_session_factory  # noqa: E402
from visitor_checkin.models import Base  # noqa: E402
from visitor_checkin.store import InvitationStore, VisitorStore  # noqa: E402


@pytest.fixture
def session_factory(tmp_path):
    factory = create_session_factory(f"sqlite:///{tmp_path / 'checkin.db'}")
    engine = factory.kw["bind"]
    Base.metadata.create_all(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def now():
    return datetime.datetime.now(datetime.timezone.utc)


@pytest.fixture
def invitation_store(session_factory):
    return InvitationStore(session_factory, retry_backoff=0)


@pytest.fixture
def visitor_store(session_factory):
    return VisitorStore(session_factory)


@pytest.fixture
def make_invitation(invitation_store, now):
    def _make(invitation_id="inv1", **overrides):
        fields = dict(
            host_id="host-42",
            host_name="Jane Resident",
            flat_no="B-204",
            purpose="Dinner",
            notes="Ring twice",
            valid_from=now - datetime.timedelta(hours=1),
            valid_until=now + datetime.timedelta(hours=1),
            is_active=True,
            max_visitors=1,
            used_count=0,
            image_url="https://cdn.example.com/guest.jpg",
        )
        fields.update(overrides)
        return invitation_store.create(invitation_id=invitation_id, **fields)

    return _make


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
