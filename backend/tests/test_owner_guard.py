# ruff: noqa: INP001
"""Per-owner serialization and slot lifetime."""

from __future__ import annotations

import asyncio

import pytest

from taskrank.services.tasks.owner_guard import OwnerGuard


@pytest.mark.asyncio
async def test_same_owner_holders_never_overlap() -> None:
    guard = OwnerGuard()
    events: list[str] = []

    async def _work(name: str) -> None:
        async with guard.hold("owner-1"):
            events.append(f"{name}:enter")
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            events.append(f"{name}:exit")

    await asyncio.gather(_work("a"), _work("b"), _work("c"))

    assert events == [
        "a:enter",
        "a:exit",
        "b:enter",
        "b:exit",
        "c:enter",
        "c:exit",
    ]


@pytest.mark.asyncio
async def test_slot_is_evicted_once_drained() -> None:
    guard = OwnerGuard()

    async with guard.hold("owner-1"):
        assert len(guard) == 1
        assert guard.pending("owner-1") == 1

    assert len(guard) == 0
    assert guard.pending("owner-1") == 0


@pytest.mark.asyncio
async def test_slot_is_evicted_after_holder_raises() -> None:
    guard = OwnerGuard()

    with pytest.raises(RuntimeError):
        async with guard.hold("owner-1"):
            raise RuntimeError("boom")

    assert len(guard) == 0


@pytest.mark.asyncio
async def test_pending_counts_queued_requests() -> None:
    guard = OwnerGuard()
    release = asyncio.Event()
    entered = asyncio.Event()

    async def _holder() -> None:
        async with guard.hold("owner-1"):
            entered.set()
            await release.wait()

    async def _waiter() -> None:
        async with guard.hold("owner-1"):
            pass

    holder = asyncio.create_task(_holder())
    await entered.wait()
    waiter = asyncio.create_task(_waiter())
    await asyncio.sleep(0)

    assert guard.pending("owner-1") == 2

    release.set()
    await asyncio.gather(holder, waiter)
    assert len(guard) == 0


@pytest.mark.asyncio
async def test_different_owners_proceed_in_parallel() -> None:
    guard = OwnerGuard()
    first_entered = asyncio.Event()
    second_entered = asyncio.Event()

    async def _owner_one() -> None:
        async with guard.hold("owner-1"):
            first_entered.set()
            await second_entered.wait()

    async def _owner_two() -> None:
        async with guard.hold("owner-2"):
            second_entered.set()
            await first_entered.wait()

    # Would deadlock if owners shared a lock.
    await asyncio.wait_for(asyncio.gather(_owner_one(), _owner_two()), timeout=1)
    assert len(guard) == 0
