# ruff: noqa: INP001
"""Guarded renumber passes against the in-memory store."""

from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from task_fakes import InMemoryTaskStore

from taskrank.services.tasks import ordering
from taskrank.services.tasks.errors import StoreError, TaskNotFoundError
from taskrank.services.tasks.ordering import OrderingEngine
from taskrank.services.tasks.owner_guard import OwnerGuard

OWNER = "owner-1"


def _engine(store: InMemoryTaskStore, *, write_concurrency: int = 4) -> OrderingEngine:
    return OrderingEngine(store, OwnerGuard(), write_concurrency=write_concurrency)


@pytest.mark.asyncio
async def test_second_reprioritize_writes_nothing() -> None:
    store = InMemoryTaskStore()
    store.seed(OWNER, "p1", is_primary=True, priority=4)
    store.seed(OWNER, "p2", is_primary=True, priority=4)
    store.seed(OWNER, "s1", priority=10)
    engine = _engine(store)

    first = await engine.reprioritize(OWNER)
    second = await engine.reprioritize(OWNER)

    assert first == 3
    assert second == 0
    assert store.ordering(OWNER) == ([("p1", 1), ("p2", 2)], [("s1", 1)])


@pytest.mark.asyncio
async def test_insert_or_move_across_sublists() -> None:
    store = InMemoryTaskStore()
    store.seed(OWNER, "p1", is_primary=True, priority=1)
    store.seed(OWNER, "p2", is_primary=True, priority=2)
    s1 = store.seed(OWNER, "s1", priority=1)
    store.seed(OWNER, "s2", priority=2)
    engine = _engine(store)

    await engine.insert_or_move(OWNER, s1.id, is_primary=True, position=1)

    assert store.ordering(OWNER) == (
        [("p1", 1), ("s1", 2), ("p2", 3)],
        [("s2", 1)],
    )


@pytest.mark.asyncio
async def test_reprioritize_with_combined_position_moves_within_sublist() -> None:
    store = InMemoryTaskStore()
    store.seed(OWNER, "p1", is_primary=True, priority=1)
    store.seed(OWNER, "s1", priority=1)
    store.seed(OWNER, "s2", priority=2)
    s3 = store.seed(OWNER, "s3", priority=3)
    engine = _engine(store)

    writes = await engine.reprioritize(OWNER, s3.id, 1)

    assert writes == 3
    assert store.ordering(OWNER) == (
        [("p1", 1)],
        [("s3", 1), ("s1", 2), ("s2", 3)],
    )


@pytest.mark.asyncio
async def test_missing_target_raises_not_found() -> None:
    store = InMemoryTaskStore()
    store.seed(OWNER, "p1", is_primary=True, priority=1)
    engine = _engine(store)

    with pytest.raises(TaskNotFoundError):
        await engine.insert_or_move(OWNER, uuid4(), is_primary=True, position=0)


@pytest.mark.asyncio
async def test_other_owner_task_is_not_found() -> None:
    store = InMemoryTaskStore()
    foreign = store.seed("owner-2", "theirs", is_primary=True, priority=1)
    engine = _engine(store)

    with pytest.raises(TaskNotFoundError):
        await engine.move_to_rank(OWNER, foreign.id, is_primary=True, rank=1)
    assert store.writes == []


@pytest.mark.asyncio
async def test_inactive_target_is_left_alone_and_others_renumbered() -> None:
    store = InMemoryTaskStore()
    done = store.seed(OWNER, "done", is_primary=True, priority=5, status="Completed")
    store.seed(OWNER, "p1", is_primary=True, priority=3)
    engine = _engine(store)

    writes = await engine.insert_or_move(OWNER, done.id, is_primary=True, position=0)

    assert writes == 1
    assert store.rows[done.id].priority == 5
    assert store.ordering(OWNER) == ([("p1", 1)], [])


@pytest.mark.asyncio
async def test_deleting_completed_task_leaves_active_priorities() -> None:
    store = InMemoryTaskStore()
    store.seed(OWNER, "p1", is_primary=True, priority=1)
    done = store.seed(OWNER, "done", is_primary=True, priority=2, status="Completed")
    store.seed(OWNER, "p2", is_primary=True, priority=2)
    engine = _engine(store)

    await store.delete_task(OWNER, done.id)

    assert await engine.renumber(OWNER) == 0
    assert store.ordering(OWNER) == ([("p1", 1), ("p2", 2)], [])


@pytest.mark.asyncio
async def test_partial_write_failure_is_repaired_by_next_pass() -> None:
    store = InMemoryTaskStore()
    p1 = store.seed(OWNER, "p1", is_primary=True, priority=1)
    store.seed(OWNER, "p2", is_primary=True, priority=2)
    store.seed(OWNER, "p3", is_primary=True, priority=3)
    new = store.seed(OWNER, "new", is_primary=True, priority=4)
    store.fail_put = lambda task, _fields: task.id == p1.id
    engine = _engine(store)

    with pytest.raises(StoreError):
        await engine.insert_or_move(OWNER, new.id, is_primary=True, position=0)

    # Every other write settled before the failure surfaced.
    assert store.rows[new.id].priority == 1
    assert store.rows[p1.id].priority == 1

    store.fail_put = None
    await engine.renumber(OWNER)

    store.assert_contiguous(OWNER)
    assert await engine.renumber(OWNER) == 0


@pytest.mark.asyncio
async def test_started_pass_completes_when_caller_is_cancelled() -> None:
    store = InMemoryTaskStore()
    for index in range(6):
        store.seed(OWNER, f"s{index}", priority=10 + index)
    guard = OwnerGuard()
    engine = OrderingEngine(store, guard, write_concurrency=1)

    caller = asyncio.create_task(engine.renumber(OWNER))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    for _ in range(200):
        if len(guard) == 0:
            break
        await asyncio.sleep(0)

    assert len(guard) == 0
    store.assert_contiguous(OWNER)


@pytest.mark.asyncio
async def test_failed_pass_after_caller_cancel_is_logged(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    store = InMemoryTaskStore(fail_put=lambda *_: True)
    for index in range(4):
        store.seed(OWNER, f"s{index}", priority=10 + index)
    guard = OwnerGuard()
    engine = OrderingEngine(store, guard, write_concurrency=1)
    warnings: list[tuple[str, dict[str, object]]] = []

    def _fake_warning(message: str, *args: object, **kwargs: object) -> None:
        _ = args
        extra = kwargs.get("extra")
        warnings.append((message, extra if isinstance(extra, dict) else {}))

    monkeypatch.setattr(ordering.logger, "warning", _fake_warning)

    caller = asyncio.create_task(engine.renumber(OWNER))
    await asyncio.sleep(0)
    await asyncio.sleep(0)
    caller.cancel()
    with pytest.raises(asyncio.CancelledError):
        await caller

    for _ in range(200):
        if any(message == "tasks.ordering.detached_pass_failed" for message, _ in warnings):
            break
        await asyncio.sleep(0)

    detached = [
        extra for message, extra in warnings if message == "tasks.ordering.detached_pass_failed"
    ]
    assert len(detached) == 1
    assert detached[0]["owner_id"] == OWNER
    assert "injected failure" in str(detached[0]["error"])
    assert len(guard) == 0


@pytest.mark.asyncio
async def test_concurrent_passes_for_one_owner_never_duplicate_priorities() -> None:
    store = InMemoryTaskStore()
    tasks = [store.seed(OWNER, f"s{i}", priority=i) for i in range(1, 9)]
    engine = _engine(store, write_concurrency=2)

    await asyncio.gather(
        *(
            engine.insert_or_move(OWNER, task.id, is_primary=index % 2 == 0, position=0)
            for index, task in enumerate(tasks)
        ),
    )

    store.assert_contiguous(OWNER)
    primary, secondary = store.ordering(OWNER)
    assert len(primary) == 4
    assert len(secondary) == 4
