"""In-memory filtering and sorting of an owner's tasks for list views."""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from datetime import date, timedelta
from typing import TYPE_CHECKING

from taskrank.models.tasks import ACTIVE_TASK_STATUSES

if TYPE_CHECKING:
    from taskrank.models.tasks import Task
    from taskrank.schemas.tasks import TaskListFilters

WEEK_DAYS = 7


def due_window(
    date_filter: str | None,
    *,
    today: date,
    start_date: date | None = None,
    end_date: date | None = None,
) -> tuple[date | None, date | None]:
    """Resolve a due-date preset plus explicit bounds into an inclusive range.

    Explicit ``start_date``/``end_date`` win over the preset's own bounds.
    """
    low: date | None = None
    high: date | None = None
    if date_filter == "pastDue":
        high = today - timedelta(days=1)
    elif date_filter == "dueToday":
        low = high = today
    elif date_filter == "dueThisWeek":
        low, high = today, today + timedelta(days=WEEK_DAYS)
    elif date_filter == "dueThisMonth":
        last_day = calendar.monthrange(today.year, today.month)[1]
        low, high = today.replace(day=1), today.replace(day=last_day)
    return (start_date or low, end_date or high)


def _matches_search(task: Task, needle: str) -> bool:
    haystacks = (task.title or "", task.description or "")
    return any(needle in value.lower() for value in haystacks)


def filter_tasks(
    tasks: Iterable[Task],
    filters: TaskListFilters,
    *,
    today: date,
) -> list[Task]:
    """Apply list filters. With no status filter only active tasks are kept."""
    statuses = set(filters.status) if filters.status else set(ACTIVE_TASK_STATUSES)
    wanted_tags = set(filters.tags)
    needle = (filters.search or "").strip().lower()
    no_due_date = filters.date_filter == "noDueDate"
    low, high = due_window(
        None if no_due_date else filters.date_filter,
        today=today,
        start_date=filters.start_date,
        end_date=filters.end_date,
    )

    out: list[Task] = []
    for task in tasks:
        if task.status not in statuses:
            continue
        if wanted_tags and not wanted_tags.intersection(task.tags or []):
            continue
        if needle and not _matches_search(task, needle):
            continue
        if no_due_date:
            if task.due_date is not None:
                continue
        elif low is not None or high is not None:
            if task.due_date is None:
                continue
            if low is not None and task.due_date < low:
                continue
            if high is not None and task.due_date > high:
                continue
        out.append(task)
    return sort_for_display(out)


def sort_for_display(tasks: Iterable[Task]) -> list[Task]:
    """Active primary, then active secondary, by priority; inactive tasks last."""
    return sorted(
        tasks,
        key=lambda t: (not t.is_active, not t.is_primary, t.priority, t.created_at),
    )


def upcoming_tasks(tasks: Iterable[Task], *, today: date, days: int) -> list[Task]:
    """Active tasks due within ``days`` from ``today`` (inclusive), soonest first."""
    horizon = today + timedelta(days=days)
    due = [
        task
        for task in tasks
        if task.is_active and task.due_date is not None and today <= task.due_date <= horizon
    ]
    return sorted(due, key=lambda t: (t.due_date, not t.is_primary, t.priority))
