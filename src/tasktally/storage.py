"""Entity store for users, tasks and expenses.

Two backends share the ``Storage`` interface: ``MemStorage`` keeps everything
in process memory, ``SqlStorage`` persists through SQLAlchemy. Lookups of
unknown ids return ``None`` (or ``False`` for deletes); callers decide how to
report absence.
"""

import logging
import threading
from datetime import timezone
from abc import ABC, abstractmethod
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import Settings
from .database import (
    ExpenseRecord,
    SessionLocal,
    TaskRecord,
    init_db,
    make_engine,
    make_session_factory,
)
from .errors import StorageError
from .models.user import UserRecord
from .schemas import (
    Expense,
    ExpenseCreate,
    ExpenseUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
    User,
)


logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


class Storage(ABC):
    """CRUD operations for every entity kind."""

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, username: str, password_hash: str) -> User:
        """Store a user. Username uniqueness is the caller's concern."""

    # Tasks
    @abstractmethod
    def get_tasks(self) -> List[Task]: ...

    @abstractmethod
    def get_task(self, task_id: int) -> Optional[Task]: ...

    @abstractmethod
    def create_task(self, data: TaskCreate) -> Task: ...

    @abstractmethod
    def update_task(self, task_id: int, changes: TaskUpdate) -> Optional[Task]: ...

    @abstractmethod
    def delete_task(self, task_id: int) -> bool: ...

    # Expenses
    @abstractmethod
    def get_expenses(self) -> List[Expense]: ...

    @abstractmethod
    def get_expense(self, expense_id: int) -> Optional[Expense]: ...

    @abstractmethod
    def create_expense(self, data: ExpenseCreate) -> Expense: ...

    @abstractmethod
    def update_expense(
        self, expense_id: int, changes: ExpenseUpdate
    ) -> Optional[Expense]: ...

    @abstractmethod
    def delete_expense(self, expense_id: int) -> bool: ...


def _utc_dates(fields: dict) -> dict:
    """Drop any ``id`` and convert ``date`` to UTC.

    Both backends hold dates as UTC so records read back the same way;
    naive values are taken as local time.
    """
    columns = {k: v for k, v in fields.items() if k != "id"}
    if columns.get("date") is not None:
        columns["date"] = columns["date"].astimezone(timezone.utc)
    return columns


class _MemTable(Generic[RecordT]):
    """Id-keyed records of one kind with their own id counter."""

    def __init__(self, record_type: Type[RecordT]) -> None:
        self._record_type = record_type
        self._rows: Dict[int, RecordT] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def all(self) -> List[RecordT]:
        with self._lock:
            return list(self._rows.values())

    def get(self, record_id: int) -> Optional[RecordT]:
        with self._lock:
            return self._rows.get(record_id)

    def find(self, predicate: Callable[[RecordT], bool]) -> Optional[RecordT]:
        with self._lock:
            return next((r for r in self._rows.values() if predicate(r)), None)

    def insert(self, fields: dict) -> RecordT:
        with self._lock:
            record = self._record_type(**_utc_dates(fields), id=self._next_id)
            self._rows[record.id] = record
            self._next_id += 1
            return record

    def update(self, record_id: int, changes: dict) -> Optional[RecordT]:
        changes = _utc_dates(changes)
        with self._lock:
            current = self._rows.get(record_id)
            if current is None:
                return None
            updated = current.model_copy(update=changes)
            self._rows[record_id] = updated
            return updated

    def delete(self, record_id: int) -> bool:
        with self._lock:
            return self._rows.pop(record_id, None) is not None


class MemStorage(Storage):
    """Process-local storage; contents are lost on restart."""

    def __init__(self) -> None:
        self._users: _MemTable[User] = _MemTable(User)
        self._tasks: _MemTable[Task] = _MemTable(Task)
        self._expenses: _MemTable[Expense] = _MemTable(Expense)

    def get_user(self, user_id: int) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self._users.find(lambda u: u.username == username)

    def create_user(self, username: str, password_hash: str) -> User:
        return self._users.insert({"username": username, "password": password_hash})

    def get_tasks(self) -> List[Task]:
        return self._tasks.all()

    def get_task(self, task_id: int) -> Optional[Task]:
        return self._tasks.get(task_id)

    def create_task(self, data: TaskCreate) -> Task:
        return self._tasks.insert(data.model_dump())

    def update_task(self, task_id: int, changes: TaskUpdate) -> Optional[Task]:
        return self._tasks.update(task_id, changes.changes())

    def delete_task(self, task_id: int) -> bool:
        return self._tasks.delete(task_id)

    def get_expenses(self) -> List[Expense]:
        return self._expenses.all()

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self._expenses.get(expense_id)

    def create_expense(self, data: ExpenseCreate) -> Expense:
        return self._expenses.insert(data.model_dump())

    def update_expense(
        self, expense_id: int, changes: ExpenseUpdate
    ) -> Optional[Expense]:
        return self._expenses.update(expense_id, changes.changes())

    def delete_expense(self, expense_id: int) -> bool:
        return self._expenses.delete(expense_id)


def _user_from_row(row: UserRecord) -> User:
    return User(id=row.id, username=row.username, password=row.password_hash)


def _from_row(schema, row):
    record = schema.model_validate(row)
    if record.date.tzinfo is None:
        record = record.model_copy(update={"date": record.date.replace(tzinfo=timezone.utc)})
    return record


class SqlStorage(Storage):
    """Storage backed by a relational database through SQLAlchemy."""

    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def _run(self, action: str, work: Callable[[Session], object]):
        session: Session = self._session_factory()
        try:
            return work(session)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception("storage error during %s", action)
            raise StorageError("Database error") from exc
        finally:
            session.close()

    # Users
    def get_user(self, user_id: int) -> Optional[User]:
        def work(session: Session):
            row = session.get(UserRecord, user_id)
            return _user_from_row(row) if row else None

        return self._run("get_user", work)

    def get_user_by_username(self, username: str) -> Optional[User]:
        def work(session: Session):
            row = (
                session.query(UserRecord)
                .filter(UserRecord.username == username)
                .first()
            )
            return _user_from_row(row) if row else None

        return self._run("get_user_by_username", work)

    def create_user(self, username: str, password_hash: str) -> User:
        def work(session: Session):
            row = UserRecord(username=username, password_hash=password_hash)
            session.add(row)
            session.commit()
            session.refresh(row)
            return _user_from_row(row)

        return self._run("create_user", work)

    # Generic helpers for tasks and expenses
    def _all(self, record_cls, schema):
        def work(session: Session):
            rows = session.query(record_cls).order_by(record_cls.id).all()
            return [_from_row(schema, r) for r in rows]

        return self._run(f"list {record_cls.__tablename__}", work)

    def _get(self, record_cls, schema, record_id: int):
        def work(session: Session):
            row = session.get(record_cls, record_id)
            return _from_row(schema, row) if row else None

        return self._run(f"get {record_cls.__tablename__}", work)

    def _create(self, record_cls, schema, fields: dict):
        def work(session: Session):
            row = record_cls(**_utc_dates(fields))
            session.add(row)
            session.commit()
            session.refresh(row)
            return _from_row(schema, row)

        return self._run(f"create {record_cls.__tablename__}", work)

    def _update(self, record_cls, schema, record_id: int, changes: dict):
        def work(session: Session):
            row = session.get(record_cls, record_id)
            if row is None:
                return None
            for name, value in _utc_dates(changes).items():
                setattr(row, name, value)
            session.commit()
            session.refresh(row)
            return _from_row(schema, row)

        return self._run(f"update {record_cls.__tablename__}", work)

    def _delete(self, record_cls, record_id: int) -> bool:
        def work(session: Session):
            row = session.get(record_cls, record_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

        return self._run(f"delete {record_cls.__tablename__}", work)

    # Tasks
    def get_tasks(self) -> List[Task]:
        return self._all(TaskRecord, Task)

    def get_task(self, task_id: int) -> Optional[Task]:
        return self._get(TaskRecord, Task, task_id)

    def create_task(self, data: TaskCreate) -> Task:
        return self._create(TaskRecord, Task, data.model_dump())

    def update_task(self, task_id: int, changes: TaskUpdate) -> Optional[Task]:
        return self._update(TaskRecord, Task, task_id, changes.changes())

    def delete_task(self, task_id: int) -> bool:
        return self._delete(TaskRecord, task_id)

    # Expenses
    def get_expenses(self) -> List[Expense]:
        return self._all(ExpenseRecord, Expense)

    def get_expense(self, expense_id: int) -> Optional[Expense]:
        return self._get(ExpenseRecord, Expense, expense_id)

    def create_expense(self, data: ExpenseCreate) -> Expense:
        return self._create(ExpenseRecord, Expense, data.model_dump())

    def update_expense(
        self, expense_id: int, changes: ExpenseUpdate
    ) -> Optional[Expense]:
        return self._update(ExpenseRecord, Expense, expense_id, changes.changes())

    def delete_expense(self, expense_id: int) -> bool:
        return self._delete(ExpenseRecord, expense_id)


def build_storage(config: Settings) -> Storage:
    """Create the storage backend selected by ``config.storage_backend``."""
    backend = config.storage_backend.lower()
    if backend == "memory":
        return MemStorage()
    if backend == "sql":
        bind = make_engine(config.database_url)
        init_db(bind)
        return SqlStorage(make_session_factory(bind))
    raise ValueError(f"unknown storage backend: {config.storage_backend}")
