import pytest

from tasktally import auth
from tasktally.auth import MemorySessionStore
from tasktally.errors import (
    DuplicateUsername,
    InvalidCredentials,
    NotAuthenticated,
    ValidationFailed,
)


def test_register_login_flow(storage, sessions):
    alice = auth.register(storage, "alice", "secret")
    assert alice.model_dump() == {"id": 1, "username": "alice"}

    with pytest.raises(DuplicateUsername):
        auth.register(storage, "alice", "other")
    with pytest.raises(InvalidCredentials):
        auth.login(storage, sessions, "alice", "wrong")
    with pytest.raises(InvalidCredentials):
        auth.login(storage, sessions, "nobody", "secret")

    session_id, user = auth.login(storage, sessions, "alice", "secret")
    assert user == alice
    assert auth.current_user(storage, sessions, session_id) == alice

    auth.logout(sessions, session_id)
    with pytest.raises(NotAuthenticated):
        auth.current_user(storage, sessions, session_id)


def test_password_is_stored_hashed(storage):
    auth.register(storage, "alice", "secret")
    stored = storage.get_user_by_username("alice")
    assert stored.password != "secret"
    assert auth.verify_password("secret", stored.password)
    assert not auth.verify_password("wrong", stored.password)


def test_same_password_gets_different_salts():
    assert auth.hash_password("secret") != auth.hash_password("secret")


def test_verify_rejects_non_bcrypt_hash():
    assert auth.verify_password("password", "password") is False


def test_logout_when_anonymous_is_safe(sessions):
    auth.logout(sessions, None)
    auth.logout(sessions, "unknown-session")


def test_current_user_without_session(storage, sessions):
    with pytest.raises(NotAuthenticated):
        auth.current_user(storage, sessions, None)
    with pytest.raises(NotAuthenticated):
        auth.current_user(storage, sessions, "missing")


def test_session_expires_after_idle_period():
    now = [1000.0]
    store = MemorySessionStore(max_age=60, clock=lambda: now[0])
    store.set("s1", 7)
    now[0] += 59
    assert store.get("s1") == 7
    # access slides the expiry forward
    now[0] += 59
    assert store.get("s1") == 7
    now[0] += 60
    assert store.get("s1") is None


def test_seed_demo_user_is_hashed_and_idempotent(storage):
    auth.seed_demo_user(storage)
    auth.seed_demo_user(storage)
    demo = storage.get_user_by_username("demo")
    assert demo.id == 1
    assert auth.verify_password("password", demo.password)


def test_http_register_and_login(client):
    resp = client.post("/api/auth/register", json={"username": "alice", "password": "secret"})
    assert resp.status_code == 201
    assert resp.json() == {"id": 1, "username": "alice"}

    resp = client.post("/api/auth/register", json={"username": "alice", "password": "other"})
    assert resp.status_code == 409
    assert resp.json() == {"message": "Username already registered"}

    resp = client.post("/api/auth/login", json={"username": "alice", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"message": "Invalid username or password"}

    resp = client.post("/api/auth/login", json={"username": "alice", "password": "secret"})
    assert resp.status_code == 200
    assert resp.json() == {"id": 1, "username": "alice"}
    assert "password" not in resp.json()

    resp = client.get("/api/auth/user")
    assert resp.status_code == 200
    assert resp.json() == {"id": 1, "username": "alice"}


def test_http_login_requires_anonymous_session(auth_client):
    resp = auth_client.post("/api/auth/login", json={"username": "alice", "password": "secret"})
    assert resp.status_code == 400
    assert resp.json() == {"message": "Already authenticated"}


def test_http_logout(auth_client):
    resp = auth_client.post("/api/auth/logout")
    assert resp.status_code == 204
    assert auth_client.get("/api/auth/user").status_code == 401
    # a second logout from the anonymous state is harmless
    assert auth_client.post("/api/auth/logout").status_code == 204


def test_http_user_requires_session(client):
    resp = client.get("/api/auth/user")
    assert resp.status_code == 401
    assert resp.json() == {"message": "Unauthorized"}


def test_http_register_validates_body(client):
    resp = client.post("/api/auth/register", json={"username": "alice"})
    assert resp.status_code == 400
    assert "password" in resp.json()["message"]


def test_http_login_is_rate_limited(client):
    credentials = {"username": "ghost", "password": "nope"}
    for _ in range(5):
        assert client.post("/api/auth/login", json=credentials).status_code == 401
    assert client.post("/api/auth/login", json=credentials).status_code == 429


def test_http_register_rejects_password_over_72_bytes(client):
    resp = client.post("/api/auth/register", json={"username": "bob", "password": "x" * 80})
    assert resp.status_code == 400
    assert "72 bytes" in resp.json()["message"]


def test_http_register_counts_password_bytes_not_characters(client):
    # 37 characters, 74 bytes in UTF-8
    resp = client.post("/api/auth/register", json={"username": "bob", "password": "é" * 37})
    assert resp.status_code == 400

    resp = client.post("/api/auth/register", json={"username": "bob", "password": "x" * 72})
    assert resp.status_code == 201


def test_hash_password_rejects_long_password():
    with pytest.raises(ValidationFailed):
        auth.hash_password("x" * 73)


def test_setting_a_session_prunes_expired_ones():
    now = [0.0]
    store = MemorySessionStore(max_age=60, clock=lambda: now[0])
    store.set("abandoned", 1)
    now[0] += 61
    store.set("fresh", 2)
    assert len(store) == 1
    assert store.get("fresh") == 2
    assert store.get("abandoned") is None
