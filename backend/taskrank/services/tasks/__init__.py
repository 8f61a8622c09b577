"""Task ordering, orchestration, and record store services."""

from taskrank.services.tasks.ordering import OrderingEngine
from taskrank.services.tasks.owner_guard import OwnerGuard
from taskrank.services.tasks.service import TaskService, build_task_service
from taskrank.services.tasks.store import SqlTaskStore, TaskStore

__all__ = [
    "OrderingEngine",
    "OwnerGuard",
    "SqlTaskStore",
    "TaskService",
    "TaskStore",
    "build_task_service",
]
