from sqlalchemy import Column, Integer, String

from ..database import Base


class UserRecord(Base):
    """SQLAlchemy model for application users."""

    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
