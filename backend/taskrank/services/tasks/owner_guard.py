"""Per-owner serialization of ordering passes.

Each owner with in-flight work gets a slot holding an :class:`asyncio.Lock`.
Requests for the same owner queue on that lock in arrival order, so a pass
always observes the completed writes of the one before it. The slot is
dropped once its last waiter leaves. Owners never share a slot.

This only orders work inside one process.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from taskrank.core.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@dataclass
class _OwnerSlot:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    waiters: int = 0


class OwnerGuard:
    """Keyed mutex with create-on-first-use and evict-when-drained lifetime."""

    def __init__(self) -> None:
        self._slots: dict[str, _OwnerSlot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def pending(self, owner_id: str) -> int:
        """Number of holders plus queued requests for ``owner_id``."""
        slot = self._slots.get(owner_id)
        return slot.waiters if slot is not None else 0

    @asynccontextmanager
    async def hold(self, owner_id: str) -> AsyncIterator[None]:
        slot = self._slots.get(owner_id)
        if slot is None:
            slot = _OwnerSlot()
            self._slots[owner_id] = slot
        slot.waiters += 1
        if slot.waiters > 1:
            logger.debug(
                "tasks.owner_guard.queued",
                extra={"owner_id": owner_id, "queued": slot.waiters - 1},
            )
        try:
            async with slot.lock:
                yield
        finally:
            slot.waiters -= 1
            if slot.waiters == 0 and self._slots.get(owner_id) is slot:
                del self._slots[owner_id]
