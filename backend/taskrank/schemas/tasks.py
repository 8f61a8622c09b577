"""Schemas for task create, update, read, listing and reorder payloads."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Self
from uuid import UUID

from pydantic import field_validator, model_validator
from sqlmodel import Field, SQLModel

RUNTIME_ANNOTATION_TYPES = (date, datetime, UUID)

TaskStatusValue = Literal["Open", "InProgress", "Completed", "Waiting", "Canceled"]
DueDateFilter = Literal["pastDue", "dueToday", "dueThisWeek", "dueThisMonth", "noDueDate"]


def _normalize_tags(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    # Set semantics, first occurrence wins so the caller's order is kept.
    return list(dict.fromkeys(tag.strip() for tag in value if tag and tag.strip()))


class TaskCreate(SQLModel):
    """Payload for creating a task at an explicit, prioritized, or appended position."""

    title: str
    description: str | None = None
    due_date: date | None = None
    status: TaskStatusValue = "Open"
    is_primary: bool = False
    priority: int | None = Field(
        default=None,
        ge=1,
        description="Desired 1-based priority; placed at combined position priority - 1.",
    )
    tags: list[str] = Field(default_factory=list)
    explicit_position: int | None = Field(
        default=None,
        ge=0,
        description="Zero-based combined position (primary list first, then secondary).",
    )

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str]) -> list[str]:
        return _normalize_tags(value) or []


class TaskUpdate(SQLModel):
    """Partial task update; only explicitly supplied fields are applied."""

    title: str | None = None
    description: str | None = None
    due_date: date | None = None
    status: TaskStatusValue | None = None
    is_primary: bool | None = None
    priority: int | None = Field(default=None, ge=1)
    tags: list[str] | None = None
    position: int | None = Field(
        default=None,
        ge=0,
        description="Zero-based combined position; never persisted.",
    )

    @field_validator("tags")
    @classmethod
    def _tags(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_tags(value)


class TaskRead(SQLModel):
    """Serialized task returned by the API."""

    id: UUID
    owner_id: str
    title: str
    description: str | None = None
    status: str
    is_primary: bool
    priority: int
    due_date: date | None = None
    tags: list[str] = Field(default_factory=list)
    created_at: datetime
    modified_at: datetime
    completed_at: datetime | None = None


class TaskListFilters(SQLModel):
    """Filters for listing an owner's tasks; empty filters mean all active tasks."""

    status: list[TaskStatusValue] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    search: str | None = None
    date_filter: DueDateFilter | None = None
    start_date: date | None = None
    end_date: date | None = None


class ReprioritizeRequest(SQLModel):
    """Explicit recompute trigger, optionally moving one task first."""

    moved_task_id: UUID | None = None
    new_position: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _move_is_complete(self) -> Self:
        if (self.moved_task_id is None) != (self.new_position is None):
            raise ValueError("moved_task_id and new_position must be given together.")
        return self


class ReprioritizeResponse(SQLModel):
    """Outcome of a renumber pass."""

    writes: int = Field(description="Number of task records rewritten by the pass.")
