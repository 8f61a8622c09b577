"""Task model representing an owner's prioritized work items."""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel

from taskrank.core.time import utcnow

RUNTIME_ANNOTATION_TYPES = (date, datetime)

TASK_STATUSES = frozenset({"Open", "InProgress", "Completed", "Waiting", "Canceled"})
INACTIVE_TASK_STATUSES = frozenset({"Completed", "Canceled"})
ACTIVE_TASK_STATUSES = TASK_STATUSES - INACTIVE_TASK_STATUSES


class Task(SQLModel, table=True):
    """Owner-scoped task with its position in the primary or secondary sublist."""

    __tablename__ = "tasks"  # pyright: ignore[reportAssignmentType]
    __table_args__ = (Index("ix_tasks_owner_status", "owner_id", "status"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)

    title: str
    description: str | None = None
    status: str = Field(default="Open")
    is_primary: bool = Field(default=False)
    priority: int = Field(default=1)
    due_date: date | None = Field(default=None, index=True)
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=utcnow)
    modified_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status not in INACTIVE_TASK_STATUSES
