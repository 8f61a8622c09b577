"""Task orchestration: create, update, delete, list and reorder entry points.

Input is validated before any store access. Position logic is delegated to
the :class:`OrderingEngine`; this layer only owns plain fields and the
status-derived ``completed_at`` bookkeeping. Nothing here rolls back: a
task created before a failed ordering pass stays persisted and the next pass
that touches the owner puts it in order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from taskrank.core.logging import get_logger
from taskrank.core.time import utcnow, utctoday
from taskrank.models.tasks import Task
from taskrank.services.tasks.commands import (
    FieldEdit,
    PositionMove,
    PromotionDemotion,
    StatusChange,
    classify_update,
)
from taskrank.services.tasks.errors import FieldViolation, TaskNotFoundError, TaskValidationError
from taskrank.services.tasks.filters import filter_tasks, upcoming_tasks
from taskrank.services.tasks.ordering import OrderingEngine
from taskrank.services.tasks.owner_guard import OwnerGuard
from taskrank.services.tasks.store import SqlTaskStore

if TYPE_CHECKING:
    from datetime import date, datetime
    from uuid import UUID

    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

    from taskrank.core.config import Settings
    from taskrank.schemas.tasks import TaskCreate, TaskListFilters, TaskUpdate
    from taskrank.services.tasks.store import TaskStore

logger = get_logger(__name__)

DEFAULT_TITLE_MAX_LENGTH = 200
DEFAULT_DESCRIPTION_MAX_LENGTH = 5000


def validate_task_text(
    *,
    title: str | None,
    description: str | None,
    require_title: bool,
    title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
    description_max_length: int = DEFAULT_DESCRIPTION_MAX_LENGTH,
) -> None:
    """Reject empty or oversized title/description values."""
    violations: list[FieldViolation] = []
    if require_title and (title is None or not title.strip()):
        violations.append(FieldViolation(field="title", message="Title is required"))
    if title is not None and len(title) > title_max_length:
        violations.append(
            FieldViolation(
                field="title",
                message=f"Title exceeds maximum length of {title_max_length} characters",
                max_length=title_max_length,
                current_length=len(title),
            ),
        )
    if description is not None and len(description) > description_max_length:
        violations.append(
            FieldViolation(
                field="description",
                message=(
                    f"Description exceeds maximum length of {description_max_length} characters"
                ),
                max_length=description_max_length,
                current_length=len(description),
            ),
        )
    if violations:
        raise TaskValidationError(violations)


def apply_status(task: Task, status: str, *, now: datetime) -> None:
    """Set ``status`` and keep ``completed_at`` in step with it."""
    previous = task.status
    task.status = status
    if status == "Completed":
        if previous != "Completed" or task.completed_at is None:
            task.completed_at = now
    else:
        task.completed_at = None


class TaskService:
    """Entry points used by every ingress adapter."""

    def __init__(
        self,
        store: TaskStore,
        engine: OrderingEngine,
        *,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
        description_max_length: int = DEFAULT_DESCRIPTION_MAX_LENGTH,
    ) -> None:
        self.store = store
        self.engine = engine
        self._title_max_length = title_max_length
        self._description_max_length = description_max_length

    def _validate(self, *, title: str | None, description: str | None, require_title: bool) -> None:
        validate_task_text(
            title=title,
            description=description,
            require_title=require_title,
            title_max_length=self._title_max_length,
            description_max_length=self._description_max_length,
        )

    async def get_task(self, owner_id: str, task_id: UUID) -> Task | None:
        return await self.store.get_task(owner_id, task_id)

    async def create_task(self, owner_id: str, payload: TaskCreate) -> Task:
        """Persist a new task, then place it at a combined position.

        The position is ``explicit_position``, else ``priority - 1``, else the
        end of the task's sublist.
        """
        self._validate(title=payload.title, description=payload.description, require_title=True)
        now = utcnow()
        task = Task(
            owner_id=owner_id,
            title=payload.title,
            description=payload.description,
            status=payload.status,
            is_primary=payload.is_primary,
            priority=payload.priority or 1,
            due_date=payload.due_date,
            tags=list(payload.tags),
            created_at=now,
            modified_at=now,
            completed_at=now if payload.status == "Completed" else None,
        )
        await self.store.put_task(task)
        logger.info(
            "tasks.created",
            extra={"owner_id": owner_id, "task_id": str(task.id), "is_primary": task.is_primary},
        )

        position = payload.explicit_position
        if position is None and payload.priority is not None:
            position = payload.priority - 1
        await self.engine.insert_or_move(
            owner_id,
            task.id,
            is_primary=task.is_primary,
            position=position,
        )

        # The pass may have shifted the new task's priority.
        refreshed = await self.store.get_task(owner_id, task.id)
        return refreshed if refreshed is not None else task

    async def update_task(
        self,
        owner_id: str,
        task_id: UUID,
        payload: TaskUpdate,
    ) -> Task | None:
        """Apply a partial update. Returns ``None`` when the task does not exist."""
        updates = payload.model_dump(exclude_unset=True)
        self._validate(
            title=updates.get("title"),
            description=updates.get("description"),
            require_title="title" in updates,
        )

        current = await self.store.get_task(owner_id, task_id)
        if current is None:
            return None

        now = utcnow()
        changed: set[str] = set()
        ordering: PositionMove | PromotionDemotion | None = None
        for command in classify_update(current, payload):
            if isinstance(command, FieldEdit):
                for key, value in _normalized_edits(command.values).items():
                    setattr(current, key, value)
                    changed.add(key)
            elif isinstance(command, StatusChange):
                apply_status(current, command.status, now=now)
                changed.update({"status", "completed_at"})
            elif isinstance(command, (PositionMove, PromotionDemotion)):
                ordering = command

        if ordering is not None and not current.is_active:
            # Inactive tasks sit outside every pass; only the sublist flag moves.
            if current.is_primary != ordering.is_primary:
                current.is_primary = ordering.is_primary
                changed.add("is_primary")
            ordering = None

        if changed or ordering is not None:
            current.modified_at = now
            changed.add("modified_at")
            await self.store.put_task(current, fields=sorted(changed))

        try:
            if isinstance(ordering, PositionMove):
                if ordering.rank is not None:
                    await self.engine.move_to_rank(
                        owner_id,
                        task_id,
                        is_primary=ordering.is_primary,
                        rank=ordering.rank,
                    )
                else:
                    await self.engine.insert_or_move(
                        owner_id,
                        task_id,
                        is_primary=ordering.is_primary,
                        position=ordering.position,
                    )
            elif isinstance(ordering, PromotionDemotion):
                await self.engine.insert_or_move(
                    owner_id,
                    task_id,
                    is_primary=ordering.is_primary,
                    position=None,
                )
        except TaskNotFoundError:
            # Deleted concurrently between the read above and the pass.
            return None

        logger.info(
            "tasks.updated",
            extra={
                "owner_id": owner_id,
                "task_id": str(task_id),
                "fields": ",".join(sorted(changed)),
                "ordering": type(ordering).__name__ if ordering is not None else None,
            },
        )
        return await self.store.get_task(owner_id, task_id)

    async def delete_task(self, owner_id: str, task_id: UUID) -> bool:
        """Hard delete; other tasks keep their priorities."""
        deleted = await self.store.delete_task(owner_id, task_id)
        if deleted:
            logger.info("tasks.deleted", extra={"owner_id": owner_id, "task_id": str(task_id)})
        return deleted

    async def list_active_tasks(
        self,
        owner_id: str,
        filters: TaskListFilters,
        *,
        today: date | None = None,
    ) -> list[Task]:
        """List the owner's tasks; without a status filter only active ones."""
        tasks = await self.store.list_tasks(owner_id)
        return filter_tasks(tasks, filters, today=today or utctoday())

    async def list_upcoming(
        self,
        owner_id: str,
        *,
        days: int,
        today: date | None = None,
    ) -> list[Task]:
        tasks = await self.store.get_active_tasks(owner_id)
        return upcoming_tasks(tasks, today=today or utctoday(), days=days)

    async def count_active_primary(self, owner_id: str) -> int:
        return sum(1 for task in await self.store.get_active_tasks(owner_id) if task.is_primary)

    async def reprioritize(
        self,
        owner_id: str,
        moved_id: UUID | None = None,
        new_position: int | None = None,
    ) -> int:
        """Explicit recompute trigger; returns the number of rewritten records."""
        return await self.engine.reprioritize(owner_id, moved_id, new_position)


def _normalized_edits(values: dict[str, Any]) -> dict[str, Any]:
    edits = dict(values)
    if "tags" in edits and edits["tags"] is None:
        edits["tags"] = []
    return edits


def build_task_service(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    settings: Settings,
    guard: OwnerGuard | None = None,
) -> TaskService:
    """Wire the SQL store, owner guard and engine into a :class:`TaskService`."""
    store = SqlTaskStore(
        session_maker,
        call_timeout_seconds=settings.store_call_timeout_seconds,
    )
    engine = OrderingEngine(
        store,
        guard or OwnerGuard(),
        write_concurrency=settings.ordering_write_concurrency,
    )
    return TaskService(
        store,
        engine,
        title_max_length=settings.task_title_max_length,
        description_max_length=settings.task_description_max_length,
    )
