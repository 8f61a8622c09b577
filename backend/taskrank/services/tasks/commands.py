"""Classification of partial task updates into explicit commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from taskrank.models.tasks import Task
    from taskrank.schemas.tasks import TaskUpdate

ORDERING_KEYS = frozenset({"status", "is_primary", "priority", "position"})


@dataclass(frozen=True)
class FieldEdit:
    """Plain field changes with no ordering effect."""

    values: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StatusChange:
    """Status transition; never triggers a renumber on its own."""

    status: str


@dataclass(frozen=True)
class PositionMove:
    """Explicit placement by combined position or by sublist rank."""

    is_primary: bool
    position: int | None = None
    rank: int | None = None


@dataclass(frozen=True)
class PromotionDemotion:
    """Sublist change without a slot; the task goes to the end of the new sublist."""

    is_primary: bool


UpdateCommand = FieldEdit | StatusChange | PositionMove | PromotionDemotion


def classify_update(current: Task, payload: TaskUpdate) -> list[UpdateCommand]:
    """Split a partial update into commands, persisted ones before ordering ones.

    At most one ordering command (``PositionMove`` or ``PromotionDemotion``) is
    produced and it is always last.
    """
    updates = payload.model_dump(exclude_unset=True)
    commands: list[UpdateCommand] = []

    edits = {key: value for key, value in updates.items() if key not in ORDERING_KEYS}
    if edits:
        commands.append(FieldEdit(values=edits))

    new_status = updates.get("status")
    if new_status is not None and new_status != current.status:
        commands.append(StatusChange(status=new_status))

    requested_primary = updates.get("is_primary")
    target_primary = current.is_primary if requested_primary is None else requested_primary

    if updates.get("position") is not None:
        commands.append(PositionMove(is_primary=target_primary, position=updates["position"]))
    elif updates.get("priority") is not None:
        commands.append(PositionMove(is_primary=target_primary, rank=updates["priority"]))
    elif target_primary != current.is_primary:
        commands.append(PromotionDemotion(is_primary=target_primary))
    return commands
