"""Service layer for tasks, expenses and reports."""

import logging
from datetime import datetime
from typing import List, Optional

from prometheus_client import Counter

from . import date_utils
from .date_utils import DateFilter
from .errors import NotFound
from .schemas import (
    DashboardSummary,
    Expense,
    ExpenseCreate,
    ExpenseReport,
    ExpenseUpdate,
    Task,
    TaskCreate,
    TaskUpdate,
)
from .storage import Storage


logger = logging.getLogger(__name__)

TASK_COUNTER = Counter("tasks_created_total", "Total tasks created")
EXPENSE_COUNTER = Counter("expenses_created_total", "Total expenses created")


def list_tasks(
    storage: Storage, date_filter: DateFilter = DateFilter.ALL, now: Optional[datetime] = None
) -> List[Task]:
    return date_utils.filter_by_date(storage.get_tasks(), date_filter, now)


def get_task(storage: Storage, task_id: int) -> Task:
    task = storage.get_task(task_id)
    if task is None:
        raise NotFound("Task not found")
    return task


def create_task(storage: Storage, payload: TaskCreate) -> Task:
    task = storage.create_task(payload)
    TASK_COUNTER.inc()
    logger.info("created task id=%s", task.id)
    return task


def update_task(storage: Storage, task_id: int, payload: TaskUpdate) -> Task:
    task = storage.update_task(task_id, payload)
    if task is None:
        raise NotFound("Task not found")
    logger.info("updated task id=%s fields=%s", task_id, sorted(payload.changes()))
    return task


def delete_task(storage: Storage, task_id: int) -> None:
    if not storage.delete_task(task_id):
        raise NotFound("Task not found")
    logger.info("deleted task id=%s", task_id)


def list_expenses(
    storage: Storage, date_filter: DateFilter = DateFilter.ALL, now: Optional[datetime] = None
) -> List[Expense]:
    return date_utils.filter_by_date(storage.get_expenses(), date_filter, now)


def get_expense(storage: Storage, expense_id: int) -> Expense:
    expense = storage.get_expense(expense_id)
    if expense is None:
        raise NotFound("Expense not found")
    return expense


def create_expense(storage: Storage, payload: ExpenseCreate) -> Expense:
    expense = storage.create_expense(payload)
    EXPENSE_COUNTER.inc()
    logger.info(
        "created expense id=%s amount=%s category=%s",
        expense.id,
        expense.amount,
        expense.category,
    )
    return expense


def update_expense(storage: Storage, expense_id: int, payload: ExpenseUpdate) -> Expense:
    expense = storage.update_expense(expense_id, payload)
    if expense is None:
        raise NotFound("Expense not found")
    logger.info("updated expense id=%s fields=%s", expense_id, sorted(payload.changes()))
    return expense


def delete_expense(storage: Storage, expense_id: int) -> None:
    if not storage.delete_expense(expense_id):
        raise NotFound("Expense not found")
    logger.info("deleted expense id=%s", expense_id)


def dashboard_summary(storage: Storage, now: Optional[datetime] = None) -> DashboardSummary:
    """Summarise today's tasks and expense totals for day, week and month."""

    today = date_utils.todays_tasks(storage.get_tasks(), now)
    expenses = storage.get_expenses()
    return DashboardSummary(
        todays_tasks=len(today),
        completed_today=sum(1 for task in today if task.completed),
        expenses_today=date_utils.total_by_filter(expenses, DateFilter.DAY, now),
        expenses_week=date_utils.total_by_filter(expenses, DateFilter.WEEK, now),
        expenses_month=date_utils.total_by_filter(expenses, DateFilter.MONTH, now),
    )


def expense_report(
    storage: Storage, date_filter: DateFilter = DateFilter.ALL, now: Optional[datetime] = None
) -> ExpenseReport:
    """Build category and per-day breakdowns for the reports view.

    Parameters
    ----------
    storage: Storage
        Source of expenses.
    date_filter: DateFilter
        Window used for the total and the category breakdown.
    now: datetime, optional
        Anchor for the window; defaults to the current time.

    Returns
    -------
    ExpenseReport
        ``daily_totals`` always covers the current Monday-based week
        regardless of ``date_filter``.
    """
    expenses = storage.get_expenses()
    filtered = date_utils.filter_by_date(expenses, date_filter, now)
    totals = date_utils.group_by_category(filtered)
    return ExpenseReport(
        filter=DateFilter(date_filter).value,
        total=sum((e.amount for e in filtered), 0.0),
        category_totals=totals,
        category_percentages=date_utils.category_percentages(totals),
        week_days=date_utils.week_day_labels(now),
        daily_totals=date_utils.daily_totals(expenses, now),
    )
