"""Database setup for the durable storage backend."""

from sqlalchemy import create_engine, Column, Integer, Float, String, Boolean, DateTime, Text
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import settings


def _connect_args(url: str) -> dict:
    # FastAPI serves sync handlers from a thread pool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


def make_engine(url: str):
    return create_engine(url, future=True, connect_args=_connect_args(url))


def make_session_factory(bind):
    return sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True)


engine = make_engine(settings.database_url)
SessionLocal = make_session_factory(engine)
Base = declarative_base()


class TaskRecord(Base):
    """SQLAlchemy model for a task."""

    __tablename__ = "tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text)
    date = Column(DateTime(timezone=True), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)


class ExpenseRecord(Base):
    """SQLAlchemy model for an expense."""

    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    description = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String(32), nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)


def init_db(bind=None) -> None:
    """Create database tables if they do not exist."""
    # registers the users table on Base.metadata
    from .models import user  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
