"""Single-slot holder for records produced by assistant function calls.

A function call captures a record into a ``PendingItem``; a ``MergeBridge``
listening on the slot appends it to the owning list exactly once. The slot's
state is a tagged variant so callers can tell Idle, Captured and Merged apart.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Captured(Generic[T]):
    record: T


@dataclass(frozen=True)
class Merged(Generic[T]):
    record: T


SlotState = Idle | Captured | Merged

Listener = Callable[[Any], Awaitable[None]]


class PendingItem(Generic[T]):
    def __init__(self) -> None:
        self.state: SlotState = Idle()
        self._listeners: list[Listener] = []

    @property
    def record(self) -> T | None:
        if isinstance(self.state, (Captured, Merged)):
            return self.state.record
        return None

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    async def capture(self, record: T) -> bool:
        """Store a new record and notify listeners.

        Returns False without notifying when ``record`` equals the record
        already held.
        """
        if self.record is not None and self.record == record:
            logger.debug("Pending record unchanged; no capture event")
            return False
        self.state = Captured(record)
        for listener in self._listeners:
            await listener(record)
        return True

    def mark_merged(self) -> None:
        if isinstance(self.state, Captured):
            self.state = Merged(self.state.record)


class MergeBridge(Generic[T]):
    """Append each newly captured record to ``target`` exactly once."""

    def __init__(
        self,
        pending: PendingItem[T],
        target: list[T],
        on_merged: Callable[[T], Awaitable[None]] | None = None,
    ) -> None:
        self.pending = pending
        self.target = target
        self.on_merged = on_merged
        self.merged: list[T] = []
        pending.add_listener(self._on_captured)

    async def _on_captured(self, record: T) -> None:
        if not isinstance(self.pending.state, Captured):
            return
        self.target.append(record)
        self.merged.append(record)
        self.pending.mark_merged()
        logger.info("Merged %s from assistant", type(record).__name__)
        if self.on_merged is not None:
            await self.on_merged(record)

    def drain(self) -> list[T]:
        """Return and forget the records merged since the last drain."""
        merged, self.merged = self.merged, []
        return merged
