# ruff: noqa: INP001
"""Partial update classification into field, status, and ordering commands."""

from __future__ import annotations

from taskrank.models.tasks import Task
from taskrank.schemas.tasks import TaskUpdate
from taskrank.services.tasks.commands import (
    FieldEdit,
    PositionMove,
    PromotionDemotion,
    StatusChange,
    classify_update,
)


def _current(*, is_primary: bool = False, status: str = "Open") -> Task:
    return Task(owner_id="owner-1", title="t", is_primary=is_primary, status=status)


def test_plain_field_edit_has_no_ordering_command() -> None:
    commands = classify_update(_current(), TaskUpdate(title="new", tags=["a"]))

    assert commands == [FieldEdit(values={"title": "new", "tags": ["a"]})]


def test_same_status_is_not_a_status_change() -> None:
    assert classify_update(_current(status="Open"), TaskUpdate(status="Open")) == []


def test_status_change_precedes_ordering_command() -> None:
    commands = classify_update(
        _current(),
        TaskUpdate(status="InProgress", position=0),
    )

    assert commands == [
        StatusChange(status="InProgress"),
        PositionMove(is_primary=False, position=0),
    ]


def test_position_wins_over_priority() -> None:
    commands = classify_update(
        _current(),
        TaskUpdate(is_primary=True, position=2, priority=5),
    )

    assert commands == [PositionMove(is_primary=True, position=2)]


def test_priority_without_position_is_a_rank_move() -> None:
    commands = classify_update(_current(is_primary=True), TaskUpdate(priority=3))

    assert commands == [PositionMove(is_primary=True, rank=3)]


def test_sublist_flip_without_slot_is_promotion() -> None:
    assert classify_update(_current(), TaskUpdate(is_primary=True)) == [
        PromotionDemotion(is_primary=True),
    ]
    assert classify_update(_current(is_primary=True), TaskUpdate(is_primary=False)) == [
        PromotionDemotion(is_primary=False),
    ]


def test_unchanged_sublist_flag_is_ignored() -> None:
    assert classify_update(_current(is_primary=True), TaskUpdate(is_primary=True)) == []


def test_explicit_null_fields_are_field_edits() -> None:
    commands = classify_update(_current(), TaskUpdate(description=None, due_date=None))

    assert commands == [FieldEdit(values={"description": None, "due_date": None})]
