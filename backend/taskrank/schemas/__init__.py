"""Public schema exports shared across API route modules."""

from taskrank.schemas.health import HealthStatusResponse
from taskrank.schemas.tasks import (
    ReprioritizeRequest,
    ReprioritizeResponse,
    TaskCreate,
    TaskListFilters,
    TaskRead,
    TaskUpdate,
)

__all__ = [
    "HealthStatusResponse",
    "ReprioritizeRequest",
    "ReprioritizeResponse",
    "TaskCreate",
    "TaskListFilters",
    "TaskRead",
    "TaskUpdate",
]
