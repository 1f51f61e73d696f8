"""Pydantic models for stored records and API payloads."""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, confloat, field_validator, model_validator


MAX_PASSWORD_BYTES = 72


class Category(str, Enum):
    """Fixed set of expense categories."""

    FOOD = "Food"
    TRAVEL = "Travel"
    BILLS = "Bills"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


class PartialUpdate(BaseModel):
    """Base for PATCH bodies where every field is optional.

    Fields listed in ``required_fields`` may be omitted but not set to null.
    """

    required_fields: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_null_required(self):
        for name in self.required_fields:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> Dict[str, Any]:
        """Return only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class TaskCreate(BaseModel):
    """Request body for creating a task."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    date: datetime
    completed: bool = False


class TaskUpdate(PartialUpdate):
    """Request body for a partial task update."""

    required_fields: ClassVar[Tuple[str, ...]] = ("title", "date", "completed")

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    date: Optional[datetime] = None
    completed: Optional[bool] = None


class Task(BaseModel):
    """A stored task."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    date: datetime
    completed: bool = False


class ExpenseCreate(BaseModel):
    """Request body for creating an expense."""

    model_config = ConfigDict(use_enum_values=True)

    description: str = Field(..., min_length=1)
    amount: confloat(gt=0, allow_inf_nan=False)
    category: Category
    date: datetime


class ExpenseUpdate(PartialUpdate):
    """Request body for a partial expense update."""

    model_config = ConfigDict(use_enum_values=True)
    required_fields: ClassVar[Tuple[str, ...]] = (
        "description",
        "amount",
        "category",
        "date",
    )

    description: Optional[str] = Field(None, min_length=1)
    amount: Optional[confloat(gt=0, allow_inf_nan=False)] = None
    category: Optional[Category] = None
    date: Optional[datetime] = None


class Expense(BaseModel):
    """A stored expense.

    ``amount`` and ``category`` are validated on the way in; the record
    itself accepts whatever the store holds.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    amount: float
    category: str
    date: datetime


class UserCredentials(BaseModel):
    """Request body for registration and login."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        # bcrypt only uses the first 72 bytes
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class User(BaseModel):
    """A stored user; ``password`` holds the bcrypt hash."""

    id: int
    username: str
    password: str


class UserOut(BaseModel):
    """User representation returned to clients, without the password."""

    id: int
    username: str

    @classmethod
    def from_user(cls, user: User) -> "UserOut":
        return cls(id=user.id, username=user.username)


class DashboardSummary(BaseModel):
    """Today's task progress and expense totals for the dashboard."""

    todays_tasks: int
    completed_today: int
    expenses_today: float
    expenses_week: float
    expenses_month: float


class ExpenseReport(BaseModel):
    """Aggregated expense figures for a date filter."""

    filter: str
    total: float
    category_totals: Dict[str, float]
    category_percentages: Dict[str, int]
    week_days: List[str]
    daily_totals: List[float]
