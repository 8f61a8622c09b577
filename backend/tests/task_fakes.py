# ruff: noqa: INP001
"""In-memory record store used by engine and orchestration tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Collection
from dataclasses import dataclass, field
from uuid import UUID

from taskrank.models.tasks import Task
from taskrank.services.tasks.errors import StoreError


def _copy(task: Task) -> Task:
    return Task.model_validate(task.model_dump())


@dataclass
class InMemoryTaskStore:
    """Dict-backed store; yields to the loop on every call to expose interleaving."""

    rows: dict[UUID, Task] = field(default_factory=dict)
    writes: list[tuple[UUID, tuple[str, ...] | None]] = field(default_factory=list)
    fail_put: Callable[[Task, tuple[str, ...] | None], bool] | None = None

    async def get_task(self, owner_id: str, task_id: UUID) -> Task | None:
        await asyncio.sleep(0)
        task = self.rows.get(task_id)
        if task is None or task.owner_id != owner_id:
            return None
        return _copy(task)

    async def get_active_tasks(self, owner_id: str) -> list[Task]:
        await asyncio.sleep(0)
        return [
            _copy(task)
            for task in self.rows.values()
            if task.owner_id == owner_id and task.is_active
        ]

    async def list_tasks(self, owner_id: str) -> list[Task]:
        await asyncio.sleep(0)
        return [_copy(task) for task in self.rows.values() if task.owner_id == owner_id]

    async def put_task(self, task: Task, *, fields: Collection[str] | None = None) -> None:
        await asyncio.sleep(0)
        written = tuple(fields) if fields is not None else None
        if self.fail_put is not None and self.fail_put(task, written):
            raise StoreError("put_task", "injected failure")
        existing = self.rows.get(task.id)
        if written is None or existing is None:
            self.rows[task.id] = _copy(task)
        else:
            for name in written:
                setattr(existing, name, getattr(task, name))
        self.writes.append((task.id, written))

    async def delete_task(self, owner_id: str, task_id: UUID) -> bool:
        await asyncio.sleep(0)
        task = self.rows.get(task_id)
        if task is None or task.owner_id != owner_id:
            return False
        del self.rows[task_id]
        return True

    def seed(
        self,
        owner_id: str,
        title: str,
        *,
        is_primary: bool = False,
        priority: int = 1,
        status: str = "Open",
    ) -> Task:
        task = Task(
            owner_id=owner_id,
            title=title,
            is_primary=is_primary,
            priority=priority,
            status=status,
        )
        self.rows[task.id] = _copy(task)
        return task

    def ordering(self, owner_id: str) -> tuple[list[tuple[str, int]], list[tuple[str, int]]]:
        """(title, priority) pairs for active primary and secondary tasks, by priority."""
        active = [t for t in self.rows.values() if t.owner_id == owner_id and t.is_active]
        primary = sorted((t for t in active if t.is_primary), key=lambda t: t.priority)
        secondary = sorted((t for t in active if not t.is_primary), key=lambda t: t.priority)
        return (
            [(t.title, t.priority) for t in primary],
            [(t.title, t.priority) for t in secondary],
        )

    def assert_contiguous(self, owner_id: str) -> None:
        primary, secondary = self.ordering(owner_id)
        assert [p for _, p in primary] == list(range(1, len(primary) + 1))
        assert [p for _, p in secondary] == list(range(1, len(secondary) + 1))
