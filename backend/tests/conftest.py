"""Pytest fixtures — file-backed SQLite database, fresh per test."""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from app.auth import create_access_token
from app.config import settings
from app.database import Base, get_db
from app.main import app, create_app
from app.services.sync_target import SyncTargetClient, get_sync_target

# Import all models so they register with Base.metadata
from app.models.user import User
from app.models.draft_version import DraftVersion
from app.models.draft_module import (
    DraftBanner,
    DraftIdentity,
    DraftScene,
    DraftClothesCategory,
    DraftPhotoHobby,
    DraftConfigExtraStep,
    DraftAppUIFields,
)
from app.models import production                        # noqa: F401
from app.models.submission import Submission            # noqa: F401
from app.models.sync import SyncIdMap                   # noqa: F401
from app.models.audit_log import AuditLog               # noqa: F401

SQLITE_URL = "sqlite:///./test.db"
# Production database of the online deployment, for push and pull tests.
ONLINE_SQLITE_URL = "sqlite:///./test_online.db"


def _fresh_engine(url: str):
    engine = create_engine(url, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = _fresh_engine(SQLITE_URL)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def online_engine():
    engine = _fresh_engine(ONLINE_SQLITE_URL)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory):
    """Yield a database session, closed after the test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def online_db(online_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=online_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def operator(db):
    return create_test_user(db, "operator", "Operator")


@pytest.fixture(scope="function")
def reviewer(db):
    return create_test_user(db, "reviewer", "Reviewer")


def _override_db(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()
    return _override_get_db


@pytest.fixture(scope="function")
def anon_client(session_factory):
    """Authoring-mode TestClient without credentials."""
    app.dependency_overrides[get_db] = _override_db(session_factory)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(anon_client, operator):
    """Authoring-mode TestClient signed in as ``operator``."""
    anon_client.headers.update(auth_headers(operator))
    return anon_client


@pytest.fixture(scope="function")
def online_client(online_engine, monkeypatch):
    """Online-mode (sync receiver) TestClient on its own database, SYNC_API_KEY = "push-key"."""
    monkeypatch.setattr(settings, "SYNC_API_KEY", "push-key")
    online_app = create_app("online")
    online_app.dependency_overrides[get_db] = _override_db(
        sessionmaker(autocommit=False, autoflush=False, bind=online_engine)
    )
    with TestClient(online_app) as c:
        yield c


@pytest.fixture(scope="function")
def remote_target(online_client):
    """Sync target client that reaches the online app in-process."""
    return SyncTargetClient("http://testserver/api/sync/push", "push-key", http=online_client)


@pytest.fixture(scope="function")
def remote_client(client, remote_target):
    """Authoring TestClient whose sync and import go to ``remote_target``."""
    app.dependency_overrides[get_sync_target] = lambda: remote_target
    return client


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------
def create_test_user(db, username: str, display_name: str = None, role: str = "user") -> User:
    user = User(username=username, display_name=display_name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def create_draft_version(db, name: str = "MUSEUM", location: str = "Museum", **fields) -> DraftVersion:
    version = DraftVersion(app_version_name=name, location_name=location, **fields)
    db.add(version)
    db.commit()
    db.refresh(version)
    return version


def add_draft_row(db, model, version: DraftVersion, **fields):
    row = model(draft_version_id=version.id, **fields)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def seed_complete_draft(db, name: str = "MUSEUM", location: str = "Museum") -> DraftVersion:
    """A draft version that passes validation for every module."""
    version = create_draft_version(db, name=name, location=location)
    add_draft_row(db, DraftBanner, version, title="Welcome", image="banner/a.png", sort=1)
    add_draft_row(db, DraftIdentity, version, name="Male", image="identity/m.png")
    add_draft_row(db, DraftScene, version, name="Entrance", image="scene/entrance.png")
    add_draft_row(db, DraftScene, version, name="Hall", image="scene/hall.png", sort=2)
    add_draft_row(db, DraftClothesCategory, version, name="default")
    add_draft_row(db, DraftPhotoHobby, version, name="default")
    add_draft_row(
        db, DraftConfigExtraStep, version,
        step_index=1, field_name="clothes_prefer", label="Clothes Preference",
    )
    add_draft_row(db, DraftAppUIFields, version, home_title_left="Hello", home_title_right="World")
    return version
