"""Bounded per-family reading queue with close-once semantics.

A ReadingQueue decouples the BLE notification callback (producer) from the
dispatch loop (consumer). It behaves like a closable channel: after close()
buffered readings are still handed out, then get() raises QueueClosed.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Any

from .logging_setup import logger

DEFAULT_CAPACITY = 10


class QueueClosed(Exception):
    """Raised by put() on a closed queue and by get() once a closed queue drains."""


class QueueFull(Exception):
    """Raised by put_nowait() when a ``block`` queue has no free slot."""


class ReadingQueue:
    def __init__(
        self,
        family: Any,
        capacity: int = DEFAULT_CAPACITY,
        overflow: str = "block",
    ) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")
        if overflow not in ("block", "drop_oldest", "drop_newest"):
            raise ValueError(f"unknown overflow policy {overflow!r}")
        self.family = family
        self.capacity = capacity
        self.overflow = overflow
        self.dropped = 0
        self._items: deque = deque()
        self._closed = False
        self._not_empty = asyncio.Event()
        self._not_full = asyncio.Event()
        self._not_full.set()
        # Serializes producers so blocked puts complete in arrival order.
        self._put_lock = asyncio.Lock()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<ReadingQueue {self.family} {len(self._items)}/{self.capacity} {state}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return len(self._items)

    def full(self) -> bool:
        return len(self._items) >= self.capacity

    def empty(self) -> bool:
        return not self._items

    async def put(self, reading: Any) -> None:
        """Append a reading; suspends while full under the ``block`` policy."""
        async with self._put_lock:
            if self._closed:
                raise QueueClosed(f"{self.family} queue is closed")
            if self.full() and self.overflow == "drop_newest":
                self.record_drop(reading)
                return
            if self.full() and self.overflow == "drop_oldest":
                self.record_drop(self._items.popleft())
            while self.full() and not self._closed:
                self._not_full.clear()
                await self._not_full.wait()
            if self._closed:
                raise QueueClosed(f"{self.family} queue is closed")
            self._items.append(reading)
            self._not_empty.set()

    def put_nowait(self, reading: Any) -> None:
        """Append without suspending; the overflow policy decides when full.

        Under ``block`` a full queue, or one with producers already waiting,
        raises QueueFull so the caller can park the reading behind them.
        """
        if self._closed:
            raise QueueClosed(f"{self.family} queue is closed")
        if self.overflow == "block":
            if self.full() or self._put_lock.locked():
                raise QueueFull(f"{self.family} queue is full")
        elif self.full() and self.overflow == "drop_newest":
            self.record_drop(reading)
            return
        elif self.full():
            self.record_drop(self._items.popleft())
        self._items.append(reading)
        self._not_empty.set()

    async def get(self) -> Any:
        """Pop the oldest reading; raises QueueClosed when closed and drained."""
        while not self._items:
            if self._closed:
                raise QueueClosed(f"{self.family} queue is closed")
            self._not_empty.clear()
            await self._not_empty.wait()
        reading = self._items.popleft()
        self._not_full.set()
        return reading

    def close(self) -> bool:
        """Close the queue and wake all waiters. True only for the closing call."""
        if self._closed:
            return False
        self._closed = True
        self._not_empty.set()
        self._not_full.set()
        logger.debug(
            {
                "event": "reading_queue_closed",
                "family": str(self.family),
                "pending": len(self._items),
                "dropped": self.dropped,
            }
        )
        return True

    def record_drop(self, reading: Any) -> None:
        """Count and log a reading lost to overflow."""
        self.dropped += 1
        logger.warning(
            {
                "event": "reading_queue_overflow",
                "family": str(self.family),
                "policy": self.overflow,
                "dropped": self.dropped,
                "reading": repr(reading),
            }
        )


__all__ = ["DEFAULT_CAPACITY", "QueueClosed", "QueueFull", "ReadingQueue"]
