"""Record store boundary for task persistence.

The ordering engine and orchestration layer only depend on the
:class:`TaskStore` protocol: per-key reads and writes plus a consistent
per-owner range read. :class:`SqlTaskStore` implements it on top of async
SQLModel sessions, one short session and transaction per call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection
from typing import TYPE_CHECKING, Protocol, TypeVar

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import col, select

from taskrank.core.logging import get_logger
from taskrank.models.tasks import INACTIVE_TASK_STATUSES, Task
from taskrank.services.tasks.errors import StoreError

if TYPE_CHECKING:
    from uuid import UUID

    from sqlalchemy.ext.asyncio import async_sessionmaker
    from sqlmodel.ext.asyncio.session import AsyncSession

logger = get_logger(__name__)

T = TypeVar("T")


class TaskStore(Protocol):
    """Capability contract consumed by the ordering engine and orchestration."""

    async def get_task(self, owner_id: str, task_id: UUID) -> Task | None: ...

    async def get_active_tasks(self, owner_id: str) -> list[Task]:
        """Return the owner's non-Completed, non-Canceled tasks in creation order."""
        ...

    async def list_tasks(self, owner_id: str) -> list[Task]: ...

    async def put_task(self, task: Task, *, fields: Collection[str] | None = None) -> None:
        """Write the whole record, or only ``fields`` when given."""
        ...

    async def delete_task(self, owner_id: str, task_id: UUID) -> bool: ...


class SqlTaskStore:
    """SQLModel-backed :class:`TaskStore`."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        *,
        call_timeout_seconds: float,
    ) -> None:
        self._session_maker = session_maker
        self._call_timeout_seconds = call_timeout_seconds

    async def _call(
        self,
        operation: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        async def _run() -> T:
            async with self._session_maker() as session:
                return await fn(session)

        try:
            return await asyncio.wait_for(_run(), timeout=self._call_timeout_seconds)
        except TimeoutError as exc:
            logger.warning(
                "tasks.store.timeout",
                extra={"operation": operation, "timeout_seconds": self._call_timeout_seconds},
            )
            raise StoreError(operation, "timed out") from exc
        except SQLAlchemyError as exc:
            logger.warning(
                "tasks.store.failed",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StoreError(operation, "database error") from exc

    async def get_task(self, owner_id: str, task_id: UUID) -> Task | None:
        async def _get(session: AsyncSession) -> Task | None:
            return (
                await session.exec(
                    select(Task).where(
                        col(Task.id) == task_id,
                        col(Task.owner_id) == owner_id,
                    ),
                )
            ).first()

        return await self._call("get_task", _get)

    async def get_active_tasks(self, owner_id: str) -> list[Task]:
        async def _active(session: AsyncSession) -> list[Task]:
            rows = await session.exec(
                select(Task)
                .where(
                    col(Task.owner_id) == owner_id,
                    col(Task.status).not_in(sorted(INACTIVE_TASK_STATUSES)),
                )
                .order_by(col(Task.created_at).asc(), col(Task.id).asc()),
            )
            return list(rows.all())

        return await self._call("get_active_tasks", _active)

    async def list_tasks(self, owner_id: str) -> list[Task]:
        async def _all(session: AsyncSession) -> list[Task]:
            rows = await session.exec(
                select(Task)
                .where(col(Task.owner_id) == owner_id)
                .order_by(col(Task.created_at).asc(), col(Task.id).asc()),
            )
            return list(rows.all())

        return await self._call("list_tasks", _all)

    async def put_task(self, task: Task, *, fields: Collection[str] | None = None) -> None:
        async def _put(session: AsyncSession) -> None:
            if fields is None:
                await session.merge(task)
            else:
                values = {name: getattr(task, name) for name in fields}
                if not values:
                    return
                await session.exec(
                    update(Task)
                    .where(
                        col(Task.id) == task.id,
                        col(Task.owner_id) == task.owner_id,
                    )
                    .values(**values),
                )
            await session.commit()

        await self._call("put_task", _put)

    async def delete_task(self, owner_id: str, task_id: UUID) -> bool:
        async def _delete(session: AsyncSession) -> bool:
            task = (
                await session.exec(
                    select(Task).where(
                        col(Task.id) == task_id,
                        col(Task.owner_id) == owner_id,
                    ),
                )
            ).first()
            if task is None:
                return False
            await session.delete(task)
            await session.commit()
            return True

        return await self._call("delete_task", _delete)
