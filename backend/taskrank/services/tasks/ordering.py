"""Priority ordering engine.

An owner's active tasks form two independently numbered sublists, primary
then secondary, addressed through one combined zero-based position. Every
ordering operation is a full renumber pass:

1. read the owner's active tasks,
2. split them into the two sublists, each stably sorted by stored priority,
3. take the moved task out of whichever sublist holds it,
4. splice it back in at the requested offset,
5. renumber both sublists ``1..N``,
6. write back only the records whose priority or sublist changed.

The pass derives everything from the observed order, never from numeric
gaps, so running it again without intervening writes is a no-op and a pass
interrupted half way through is repaired by the next one.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING

from taskrank.core.logging import get_logger
from taskrank.services.tasks.errors import TaskNotFoundError

if TYPE_CHECKING:
    from uuid import UUID

    from taskrank.models.tasks import Task
    from taskrank.services.tasks.owner_guard import OwnerGuard
    from taskrank.services.tasks.store import TaskStore

logger = get_logger(__name__)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


@dataclass(frozen=True)
class Placement:
    """Target slot for one task within a renumber pass.

    ``is_primary=None`` keeps the task in its current sublist. With neither
    ``position`` nor ``rank`` the task is appended to its sublist.
    """

    task_id: UUID
    is_primary: bool | None = None
    position: int | None = None
    rank: int | None = None

    def offset(self, *, is_primary: bool, primary_len: int, secondary_len: int) -> int:
        """Translate the request into an index within the target sublist."""
        target_len = primary_len if is_primary else secondary_len
        if self.rank is not None:
            return _clamp(self.rank - 1, 0, target_len)
        if self.position is None:
            return target_len
        if is_primary:
            return _clamp(self.position, 0, primary_len)
        return _clamp(self.position - primary_len, 0, secondary_len)


@dataclass(frozen=True)
class PriorityChange:
    """A record whose stored ordering fields differ from the computed ones."""

    task_id: UUID
    priority: int
    is_primary: bool
    fields: tuple[str, ...]


@dataclass
class OrderingPlan:
    primary: list[Task] = field(default_factory=list)
    secondary: list[Task] = field(default_factory=list)
    changes: list[PriorityChange] = field(default_factory=list)

    def combined(self) -> list[Task]:
        return [*self.primary, *self.secondary]


def plan_ordering(
    active: Sequence[Task],
    placement: Placement | None = None,
    *,
    moved: Task | None = None,
) -> OrderingPlan:
    """Compute the renumbered sublists and the minimal set of changes.

    ``moved`` supplies the placed task when it is missing from ``active``
    (for example a record the range read did not yet see).
    """
    # sorted() is stable: equal or corrupted priorities keep the read order.
    primary = sorted((t for t in active if t.is_primary), key=lambda t: t.priority)
    secondary = sorted((t for t in active if not t.is_primary), key=lambda t: t.priority)

    if placement is not None:
        target: Task | None = moved
        for sublist in (primary, secondary):
            for index, task in enumerate(sublist):
                if task.id == placement.task_id:
                    target = sublist.pop(index)
                    break
        if target is not None:
            to_primary = (
                target.is_primary if placement.is_primary is None else placement.is_primary
            )
            offset = placement.offset(
                is_primary=to_primary,
                primary_len=len(primary),
                secondary_len=len(secondary),
            )
            (primary if to_primary else secondary).insert(offset, target)

    plan = OrderingPlan(primary=primary, secondary=secondary)
    for is_primary, sublist in ((True, primary), (False, secondary)):
        for index, task in enumerate(sublist):
            new_priority = index + 1
            changed: list[str] = []
            if task.priority != new_priority:
                changed.append("priority")
            if task.is_primary != is_primary:
                changed.append("is_primary")
            if changed:
                plan.changes.append(
                    PriorityChange(
                        task_id=task.id,
                        priority=new_priority,
                        is_primary=is_primary,
                        fields=tuple(changed),
                    ),
                )
    return plan


class OrderingEngine:
    """Runs guarded renumber passes against a :class:`TaskStore`."""

    def __init__(
        self,
        store: TaskStore,
        guard: OwnerGuard,
        *,
        write_concurrency: int = 8,
    ) -> None:
        self._store = store
        self._guard = guard
        self._write_concurrency = max(1, write_concurrency)

    async def insert_or_move(
        self,
        owner_id: str,
        task_id: UUID,
        *,
        is_primary: bool,
        position: int | None,
    ) -> int:
        """Place a task at a combined position; ``None`` appends to its sublist."""
        return await self._run(
            owner_id,
            Placement(task_id=task_id, is_primary=is_primary, position=position),
        )

    async def move_to_rank(
        self,
        owner_id: str,
        task_id: UUID,
        *,
        is_primary: bool,
        rank: int,
    ) -> int:
        """Place a task at a 1-based rank within its target sublist."""
        return await self._run(
            owner_id,
            Placement(task_id=task_id, is_primary=is_primary, rank=rank),
        )

    async def renumber(self, owner_id: str) -> int:
        return await self._run(owner_id, None)

    async def reprioritize(
        self,
        owner_id: str,
        moved_id: UUID | None = None,
        new_position: int | None = None,
    ) -> int:
        """Explicit recompute; moves ``moved_id`` first when a position is given."""
        if moved_id is None or new_position is None:
            return await self.renumber(owner_id)
        return await self._run(
            owner_id,
            Placement(task_id=moved_id, position=new_position),
        )

    async def _run(self, owner_id: str, placement: Placement | None) -> int:
        # A started pass is never interrupted, even if the caller goes away.
        pass_task = asyncio.ensure_future(self._guarded_pass(owner_id, placement))
        try:
            return await asyncio.shield(pass_task)
        except asyncio.CancelledError:
            pass_task.add_done_callback(partial(_log_detached_failure, owner_id))
            raise

    async def _guarded_pass(self, owner_id: str, placement: Placement | None) -> int:
        async with self._guard.hold(owner_id):
            active = await self._store.get_active_tasks(owner_id)
            moved: Task | None = None
            if placement is not None and all(t.id != placement.task_id for t in active):
                found = await self._store.get_task(owner_id, placement.task_id)
                if found is None:
                    raise TaskNotFoundError(owner_id, placement.task_id)
                if found.is_active:
                    moved = found
                else:
                    logger.info(
                        "tasks.ordering.skip_inactive_target",
                        extra={
                            "owner_id": owner_id,
                            "task_id": str(placement.task_id),
                            "status": found.status,
                        },
                    )
                    placement = None

            plan = plan_ordering(active, placement, moved=moved)
            await self._apply(plan)
            logger.info(
                "tasks.ordering.pass_complete",
                extra={
                    "owner_id": owner_id,
                    "primary_count": len(plan.primary),
                    "secondary_count": len(plan.secondary),
                    "writes": len(plan.changes),
                },
            )
            return len(plan.changes)

    async def _apply(self, plan: OrderingPlan) -> None:
        if not plan.changes:
            return
        tasks_by_id = {task.id: task for task in plan.combined()}
        semaphore = asyncio.Semaphore(self._write_concurrency)

        async def _write(change: PriorityChange) -> None:
            task = tasks_by_id[change.task_id]
            task.priority = change.priority
            task.is_primary = change.is_primary
            async with semaphore:
                await self._store.put_task(task, fields=change.fields)

        # Settle every write before releasing the owner slot, then surface
        # the first failure; the next pass converges whatever was left.
        results = await asyncio.gather(
            *(_write(change) for change in plan.changes),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            logger.warning(
                "tasks.ordering.partial_write",
                extra={"attempted": len(plan.changes), "failed": len(failures)},
            )
            raise failures[0]


def _log_detached_failure(owner_id: str, pass_task: asyncio.Future[int]) -> None:
    """Report the outcome of a pass whose caller was cancelled."""
    if pass_task.cancelled():
        return
    exc = pass_task.exception()
    if exc is not None:
        logger.warning(
            "tasks.ordering.detached_pass_failed",
            extra={"owner_id": owner_id, "error": str(exc)},
        )
