"""Bounded in-memory queue of pending events."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from .events import LogEvent


logger = logging.getLogger(__name__)


@dataclass
class EventQueue:
    """
    Bounded FIFO buffer between the capture layer and the flush scheduler.

    Features:
    - Non-blocking push (never raises, never waits)
    - Drop-oldest overflow policy: the newest event always survives
    - Size trigger: calls `on_threshold` once `batch_size` events are queued
    - Admission closes for good once shutdown starts

    Not thread-safe: every call must come from the event loop thread.
    """
    capacity: int = 1000
    batch_size: int = 50

    # Size trigger; the flush scheduler installs itself here
    on_threshold: Callable[[], object] | None = None

    # Log aggregate drop counts every N drops
    drop_log_interval: int = 100

    # Internal state
    _events: deque[LogEvent] = field(init=False)
    _shutting_down: bool = field(default=False, init=False)
    _stats: dict = field(default_factory=dict, init=False)
    _last_logged_drops: int = field(default=0, init=False)

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        self._events = deque(maxlen=self.capacity)
        self._stats = {
            "pushed": 0,
            "dropped": 0,
            "discarded": 0,
        }

    def push(self, event: LogEvent) -> None:
        """Add an event (non-blocking)."""
        if self._shutting_down:
            logger.debug("Queue is shutting down, dropping event")
            self._stats["discarded"] += 1
            return

        # deque(maxlen) evicts the oldest entry during append
        was_full = len(self._events) >= self.capacity
        self._events.append(event)
        self._stats["pushed"] += 1

        if was_full:
            self._record_drop()

        logger.debug("Event added to queue. Queue size: %d", len(self._events))

        if len(self._events) >= self.batch_size and self.on_threshold is not None:
            logger.debug("Batch size reached, triggering flush")
            try:
                self.on_threshold()
            except Exception as e:
                logger.warning("Size-triggered flush failed: %s", e)

    def _record_drop(self) -> None:
        self._stats["dropped"] += 1
        dropped = self._stats["dropped"]

        if dropped == 1 or dropped - self._last_logged_drops >= self.drop_log_interval:
            logger.warning(
                "Queue size exceeded %d, dropping oldest events (%d dropped so far)",
                self.capacity,
                dropped,
            )
            self._last_logged_drops = dropped

    def drain(self) -> list[LogEvent]:
        """Take every queued event and start over with an empty buffer."""
        snapshot = list(self._events)
        self._events = deque(maxlen=self.capacity)
        return snapshot

    def close(self) -> None:
        """Stop admitting events. Already queued events stay drainable."""
        self._shutting_down = True

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def size(self) -> int:
        """Current number of queued events."""
        return len(self._events)

    def __len__(self) -> int:
        return len(self._events)

    @property
    def stats(self) -> dict:
        """Get queue statistics."""
        return {
            **self._stats,
            "size": self.size(),
            "capacity": self.capacity,
        }
