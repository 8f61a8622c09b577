"""Task CRUD, listing, and reprioritization endpoints."""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi_pagination import paginate
from fastapi_pagination.limit_offset import LimitOffsetPage

from taskrank.api.deps import get_owner_id, get_primary_list_limit, get_task_service
from taskrank.models.tasks import INACTIVE_TASK_STATUSES, Task
from taskrank.schemas.pagination import DefaultLimitOffsetPage
from taskrank.schemas.tasks import (
    DueDateFilter,
    ReprioritizeRequest,
    ReprioritizeResponse,
    TaskCreate,
    TaskListFilters,
    TaskRead,
    TaskStatusValue,
    TaskUpdate,
)
from taskrank.services.tasks.service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])
OWNER_DEP = Depends(get_owner_id)
SERVICE_DEP = Depends(get_task_service)
PRIMARY_LIMIT_DEP = Depends(get_primary_list_limit)
STATUS_QUERY = Query(default=None, alias="status")
TAGS_QUERY = Query(default=None)
UPCOMING_DAYS_QUERY = Query(default=7, ge=1, le=365)


def get_list_filters(
    status_filter: list[TaskStatusValue] | None = STATUS_QUERY,
    tags: list[str] | None = TAGS_QUERY,
    search: str | None = None,
    date_filter: DueDateFilter | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> TaskListFilters:
    """Collect list query parameters into a :class:`TaskListFilters`."""
    return TaskListFilters(
        status=status_filter or [],
        tags=tags or [],
        search=search,
        date_filter=date_filter,
        start_date=start_date,
        end_date=end_date,
    )


FILTERS_DEP = Depends(get_list_filters)


def _to_read(task: Task) -> TaskRead:
    return TaskRead.model_validate(task, from_attributes=True)


async def _ensure_primary_capacity(
    service: TaskService,
    *,
    owner_id: str,
    limit: int | None,
) -> None:
    if limit is None:
        return
    active_primary = await service.count_active_primary(owner_id)
    if active_primary >= limit:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": "primary_list_full",
                "message": f"Primary list already holds {active_primary} of {limit} tasks.",
                "limit": limit,
            },
        )


@router.get("", response_model=DefaultLimitOffsetPage[TaskRead])
async def list_tasks(
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
    filters: TaskListFilters = FILTERS_DEP,
) -> LimitOffsetPage[TaskRead]:
    """List the owner's tasks, primary first then secondary, by priority."""
    tasks = await service.list_active_tasks(owner_id, filters)
    return paginate(tasks, transformer=lambda items: [_to_read(task) for task in items])


@router.post("", response_model=TaskRead, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: TaskCreate,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
    primary_limit: int | None = PRIMARY_LIMIT_DEP,
) -> TaskRead:
    """Create a task and place it in the owner's ordering."""
    if payload.is_primary and payload.status not in INACTIVE_TASK_STATUSES:
        await _ensure_primary_capacity(service, owner_id=owner_id, limit=primary_limit)
    task = await service.create_task(owner_id, payload)
    return _to_read(task)


@router.get("/upcoming", response_model=list[TaskRead])
async def list_upcoming_tasks(
    days: int = UPCOMING_DAYS_QUERY,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
) -> list[TaskRead]:
    """Active tasks due within the next ``days`` days, soonest first."""
    tasks = await service.list_upcoming(owner_id, days=days)
    return [_to_read(task) for task in tasks]


@router.post("/reprioritize", response_model=ReprioritizeResponse)
async def reprioritize_tasks(
    payload: ReprioritizeRequest,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
) -> ReprioritizeResponse:
    """Renumber the owner's active tasks; a move needs both id and position."""
    writes = await service.reprioritize(owner_id, payload.moved_task_id, payload.new_position)
    return ReprioritizeResponse(writes=writes)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: UUID,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
) -> TaskRead:
    """Fetch one task."""
    task = await service.get_task(owner_id, task_id)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return _to_read(task)


@router.patch("/{task_id}", response_model=TaskRead)
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
    primary_limit: int | None = PRIMARY_LIMIT_DEP,
) -> TaskRead:
    """Apply a partial update; ordering fields trigger a renumber pass."""
    if payload.is_primary and primary_limit is not None:
        current = await service.get_task(owner_id, task_id)
        if current is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        next_status = payload.status or current.status
        if not current.is_primary and next_status not in INACTIVE_TASK_STATUSES:
            await _ensure_primary_capacity(service, owner_id=owner_id, limit=primary_limit)
    task = await service.update_task(owner_id, task_id, payload)
    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return _to_read(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: UUID,
    owner_id: str = OWNER_DEP,
    service: TaskService = SERVICE_DEP,
) -> Response:
    """Permanently delete a task; other priorities are left as they are."""
    if not await service.delete_task(owner_id, task_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
