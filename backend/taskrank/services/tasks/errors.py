"""Error taxonomy for task orchestration and the ordering engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class FieldViolation:
    """One rejected input field."""

    field: str
    message: str
    max_length: int | None = None
    current_length: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class TaskServiceError(Exception):
    """Base class for task service failures."""

    code = "task_error"


class TaskValidationError(TaskServiceError):
    """Malformed task input, rejected before any store access."""

    code = "validation_failed"

    def __init__(self, violations: list[FieldViolation]) -> None:
        self.violations = list(violations)
        fields = ", ".join(v.field for v in self.violations) or "payload"
        super().__init__(f"Validation failed for: {fields}")


class TaskNotFoundError(TaskServiceError):
    """The requested task does not exist for the owner."""

    code = "not_found"

    def __init__(self, owner_id: str, task_id: object) -> None:
        self.owner_id = owner_id
        self.task_id = task_id
        super().__init__(f"Task {task_id} not found.")


class StoreError(TaskServiceError):
    """I/O failure or timeout at the record store boundary."""

    code = "store_unavailable"

    def __init__(self, operation: str, message: str) -> None:
        self.operation = operation
        super().__init__(f"{operation}: {message}")
