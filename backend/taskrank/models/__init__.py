"""Model exports for SQLAlchemy/SQLModel metadata discovery."""

from taskrank.models.tasks import Task

__all__ = [
    "Task",
]
