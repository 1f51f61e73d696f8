"""Date windows and expense aggregation used by the dashboard and reports.

All functions are pure. Anything that depends on the current time takes an
optional ``now`` so callers and tests can pin it. Window boundaries and record
dates are both compared in the local system time zone; naive datetimes are
taken to already be local.
"""

from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, TypeVar

from .schemas import Expense, Task


class DateFilter(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class DateWindow(NamedTuple):
    """Inclusive time window; ``None`` bounds are open."""

    start: Optional[datetime]
    end: Optional[datetime]

    def contains(self, moment: datetime) -> bool:
        moment = to_local(moment)
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment > self.end:
            return False
        return True


Dated = TypeVar("Dated", Task, Expense)

_ONE_MICROSECOND = timedelta(microseconds=1)


def to_local(moment: datetime) -> datetime:
    """Return ``moment`` as an aware datetime in the local time zone."""
    return moment.astimezone()


def _now(now: Optional[datetime]) -> datetime:
    return to_local(now if now is not None else datetime.now())


def _local_midnight(day: date) -> datetime:
    """Local midnight of ``day``, with the UTC offset in force on that date."""
    return datetime.combine(day, time.min).astimezone()


def _week_start(day: date) -> date:
    # weeks start on Monday
    return day - timedelta(days=day.weekday())


def _window(first: date, after: date) -> DateWindow:
    """Window from midnight of ``first`` up to just before midnight of ``after``."""
    return DateWindow(_local_midnight(first), _local_midnight(after) - _ONE_MICROSECOND)


def _round_half_up(value: float, places: str) -> Decimal:
    return Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def get_filter_window(date_filter: DateFilter, now: Optional[datetime] = None) -> DateWindow:
    """Compute the window a filter selects, anchored on ``now``."""
    date_filter = DateFilter(date_filter)
    today = _now(now).date()
    if date_filter is DateFilter.DAY:
        return _window(today, today + timedelta(days=1))
    if date_filter is DateFilter.WEEK:
        start = _week_start(today)
        return _window(start, start + timedelta(days=7))
    if date_filter is DateFilter.MONTH:
        first = today.replace(day=1)
        if first.month == 12:
            after = first.replace(year=first.year + 1, month=1)
        else:
            after = first.replace(month=first.month + 1)
        return _window(first, after)
    return DateWindow(None, None)


def filter_by_date(
    records: Iterable[Dated], date_filter: DateFilter, now: Optional[datetime] = None
) -> List[Dated]:
    """Keep the records whose ``date`` falls inside the filter's window."""
    window = get_filter_window(date_filter, now)
    return [record for record in records if window.contains(record.date)]


def todays_tasks(tasks: Iterable[Task], now: Optional[datetime] = None) -> List[Task]:
    """Tasks dated on the current calendar day."""
    return filter_by_date(tasks, DateFilter.DAY, now)


def total_by_filter(
    expenses: Iterable[Expense], date_filter: DateFilter, now: Optional[datetime] = None
) -> float:
    return sum((e.amount for e in filter_by_date(expenses, date_filter, now)), 0.0)


def group_by_category(expenses: Iterable[Expense]) -> Dict[str, float]:
    """Sum amounts per category. Categories with no expenses are left out."""
    totals: Dict[str, float] = {}
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, 0.0) + expense.amount
    return totals


def category_percentages(category_totals: Dict[str, float]) -> Dict[str, int]:
    """Share of the grand total per category, as whole percentages.

    Each category is rounded on its own, so the values need not add up to
    exactly 100. An empty or zero grand total yields an empty mapping.
    """
    grand_total = sum(category_totals.values())
    if grand_total == 0:
        return {}
    return {
        category: int(_round_half_up(amount / grand_total * 100, "1"))
        for category, amount in category_totals.items()
    }


def week_days(now: Optional[datetime] = None) -> List[datetime]:
    """Midnight of each day in the current Monday-based week."""
    start = _week_start(_now(now).date())
    return [_local_midnight(start + timedelta(days=offset)) for offset in range(7)]


def week_day_labels(now: Optional[datetime] = None) -> List[str]:
    return [day.strftime("%a") for day in week_days(now)]


def daily_totals(expenses: Sequence[Expense], now: Optional[datetime] = None) -> List[float]:
    """Per-day expense sums for the current week, Monday first."""
    sums = {day.date(): 0.0 for day in week_days(now)}
    for expense in expenses:
        day = to_local(expense.date).date()
        if day in sums:
            sums[day] += expense.amount
    return [float(_round_half_up(total, "0.01")) for total in sums.values()]
