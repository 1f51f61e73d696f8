from datetime import datetime, timezone

import pytest

from tasktally.schemas import ExpenseCreate, ExpenseUpdate, TaskCreate, TaskUpdate


@pytest.fixture(params=["memory", "sql"])
def store(request, storage, sql_storage):
    return storage if request.param == "memory" else sql_storage


def _task(title="Pay rent"):
    return TaskCreate(title=title, date=datetime(2024, 3, 4, 10, 0))


def _expense(amount=12.5):
    return ExpenseCreate(
        description="Lunch", amount=amount, category="Food", date=datetime(2024, 3, 4)
    )


def test_created_task_is_retrievable(store):
    task = store.create_task(_task())
    assert task.id == 1
    assert task.completed is False
    assert task.description is None
    assert store.get_task(task.id) == task


def test_ids_increase_and_are_never_reused(store):
    first = store.create_task(_task("a"))
    second = store.create_task(_task("b"))
    assert store.delete_task(second.id) is True
    third = store.create_task(_task("c"))
    assert (first.id, second.id, third.id) == (1, 2, 3)


def test_unknown_ids_are_absent(store):
    assert store.get_task(42) is None
    assert store.delete_task(42) is False
    assert store.update_task(42, TaskUpdate(completed=True)) is None
    assert store.get_expense(42) is None
    assert store.delete_expense(42) is False


def test_update_merges_only_sent_fields(store):
    task = store.create_task(TaskCreate(title="Pay rent", description="March", date=datetime(2024, 3, 4)))
    updated = store.update_task(task.id, TaskUpdate(completed=True))
    assert updated.completed is True
    assert updated.title == "Pay rent"
    assert updated.description == "March"
    assert updated.id == task.id


def test_empty_update_leaves_record_unchanged(store):
    task = store.create_task(_task())
    assert store.update_task(task.id, TaskUpdate()) == task
    assert store.get_task(task.id) == task


def test_update_can_clear_optional_description(store):
    task = store.create_task(TaskCreate(title="t", description="d", date=datetime(2024, 3, 4)))
    updated = store.update_task(task.id, TaskUpdate(description=None))
    assert updated.description is None


def test_delete_is_not_idempotent(store):
    expense = store.create_expense(_expense())
    assert store.delete_expense(expense.id) is True
    assert store.get_expense(expense.id) is None
    assert store.delete_expense(expense.id) is False


def test_expense_round_trip_and_update(store):
    expense = store.create_expense(_expense())
    assert expense.category == "Food"
    assert store.get_expenses() == [expense]
    updated = store.update_expense(expense.id, ExpenseUpdate(amount=20.0, category="Bills"))
    assert updated.amount == 20.0
    assert updated.category == "Bills"
    assert updated.description == "Lunch"


def test_entity_kinds_have_independent_counters(store):
    store.create_task(_task())
    store.create_task(_task())
    assert store.create_expense(_expense()).id == 1
    assert store.create_user("alice", "hash").id == 1


def test_users_by_username(store):
    user = store.create_user("alice", "hash")
    assert store.get_user(user.id) == user
    assert store.get_user_by_username("alice") == user
    assert store.get_user_by_username("bob") is None


def test_dates_come_back_as_utc_from_every_backend(store):
    local = datetime(2024, 3, 4, 10, 0)
    task = store.create_task(TaskCreate(title="t", date=local))
    assert task.date.tzinfo == timezone.utc
    assert task.date == local.astimezone(timezone.utc)
    assert store.get_task(task.id).date == task.date

    moved = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)
    assert store.update_task(task.id, TaskUpdate(date=moved)).date == moved
