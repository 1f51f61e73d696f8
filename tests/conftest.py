import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from tasktally.api import create_app, limiter
from tasktally.auth import MemorySessionStore
from tasktally.config import settings
from tasktally.database import init_db, make_session_factory
from tasktally.storage import MemStorage, SqlStorage


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    """Keep bcrypt cheap so auth tests stay quick."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


@pytest.fixture
def storage():
    return MemStorage()


@pytest.fixture
def sql_storage():
    """Provide an isolated in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return SqlStorage(make_session_factory(engine))


@pytest.fixture
def sessions():
    return MemorySessionStore(max_age=3600)


@pytest.fixture
def client(storage, sessions):
    # slowapi keeps hit counts in a module-level limiter
    limiter.reset()
    return TestClient(create_app(storage=storage, sessions=sessions))


@pytest.fixture
def auth_client(client):
    client.post("/api/auth/register", json={"username": "alice", "password": "secret"})
    resp = client.post("/api/auth/login", json={"username": "alice", "password": "secret"})
    assert resp.status_code == 200
    return client
