"""Password hashing, server-side sessions and the login/registration flow."""

import logging
import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import bcrypt
from prometheus_client import Counter

from .config import settings
from .errors import (
    AlreadyAuthenticated,
    DuplicateUsername,
    InvalidCredentials,
    NotAuthenticated,
    ValidationFailed,
)
from .schemas import MAX_PASSWORD_BYTES, User, UserOut
from .storage import Storage

logger = logging.getLogger(__name__)

USER_REGISTERED_COUNTER = Counter(
    "users_registered_total", "Total users registered"
)
LOGIN_FAILURE_COUNTER = Counter(
    "login_failures_total", "Total failed login attempts"
)


def hash_password(password: str) -> str:
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationFailed(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        logger.warning("unusable password hash encountered")
        return False


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionStore(ABC):
    """Maps opaque session ids to user ids."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[int]: ...

    @abstractmethod
    def set(self, session_id: str, user_id: int) -> None: ...

    @abstractmethod
    def clear(self, session_id: str) -> None: ...


class MemorySessionStore(SessionStore):
    """In-process session store with sliding expiry."""

    def __init__(self, max_age: int = settings.session_max_age, clock=time.monotonic) -> None:
        self._max_age = max_age
        self._clock = clock
        self._sessions: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[int]:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            user_id, expires_at = entry
            now = self._clock()
            if now >= expires_at:
                del self._sessions[session_id]
                return None
            self._sessions[session_id] = (user_id, now + self._max_age)
            return user_id

    def set(self, session_id: str, user_id: int) -> None:
        with self._lock:
            now = self._clock()
            expired = [sid for sid, (_, expires_at) in self._sessions.items() if now >= expires_at]
            for sid in expired:
                del self._sessions[sid]
            self._sessions[session_id] = (user_id, now + self._max_age)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def clear(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)


def register(storage: Storage, username: str, password: str) -> UserOut:
    """Create a user with a hashed password.

    Raises ``DuplicateUsername`` when the name is taken.
    """
    if storage.get_user_by_username(username) is not None:
        raise DuplicateUsername(username)
    user = storage.create_user(username, hash_password(password))
    USER_REGISTERED_COUNTER.inc()
    logger.info("registered user id=%s username=%s", user.id, user.username)
    return UserOut.from_user(user)


def authenticate(storage: Storage, username: str, password: str) -> User:
    """Return the user matching the credentials or raise ``InvalidCredentials``."""
    user = storage.get_user_by_username(username)
    if user is None or not verify_password(password, user.password):
        LOGIN_FAILURE_COUNTER.inc()
        logger.warning("failed login for username=%s", username)
        raise InvalidCredentials()
    return user


def login(
    storage: Storage, sessions: SessionStore, username: str, password: str
) -> Tuple[str, UserOut]:
    """Verify credentials and bind a fresh session to the user.

    Returns the new session id together with the logged-in user.
    """
    user = authenticate(storage, username, password)
    new_id = new_session_id()
    sessions.set(new_id, user.id)
    logger.info("user id=%s logged in", user.id)
    return new_id, UserOut.from_user(user)


def is_authenticated(sessions: SessionStore, session_id: Optional[str]) -> bool:
    return bool(session_id) and sessions.get(session_id) is not None


def ensure_anonymous(sessions: SessionStore, session_id: Optional[str]) -> None:
    """Raise ``AlreadyAuthenticated`` if the session is bound to a user."""
    if is_authenticated(sessions, session_id):
        raise AlreadyAuthenticated()


def logout(sessions: SessionStore, session_id: Optional[str]) -> None:
    """Drop the session, if any."""
    if session_id:
        sessions.clear(session_id)


def current_user(
    storage: Storage, sessions: SessionStore, session_id: Optional[str]
) -> UserOut:
    """Resolve the session to its user or raise ``NotAuthenticated``."""
    if not session_id:
        raise NotAuthenticated()
    user_id = sessions.get(session_id)
    if user_id is None:
        raise NotAuthenticated()
    user = storage.get_user(user_id)
    if user is None:
        sessions.clear(session_id)
        raise NotAuthenticated()
    return UserOut.from_user(user)


def seed_demo_user(storage: Storage) -> None:
    """Create the ``demo`` account if it does not exist yet."""
    if storage.get_user_by_username("demo") is None:
        register(storage, "demo", "password")
