"""Flush scheduler: drains the event queue on size or on a timer."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .events import DispatchOutcome, LogEvent
from .queue import EventQueue


logger = logging.getLogger(__name__)


@dataclass
class FlushScheduler:
    """
    Decides when queued events go to the dispatcher.

    Two triggers converge on `request_flush()`, whichever fires first:
    - size: the queue calls it once `batch_size` events are waiting
    - time: `timer_loop()` calls it every interval while the queue is non-empty

    At most one flush is in flight. A flush snapshots the whole queue,
    hands the snapshot to `dispatch` as a background task and returns
    immediately; the `flushing` flag clears when that task completes.
    """
    queue: EventQueue

    # Dispatch function: receives the snapshot, never raises
    dispatch: Callable[[list[LogEvent]], Awaitable[DispatchOutcome]] | None = None

    flush_interval_seconds: float = 5.0

    # Internal state
    _flushing: bool = field(default=False, init=False)
    _inflight: asyncio.Task | None = field(default=None, init=False)
    _timer_task: asyncio.Task | None = field(default=None, init=False)
    _running: bool = field(default=False, init=False)
    _last_flush: float = field(default_factory=time.time, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._stats = {
            "flushes": 0,
            "events_flushed": 0,
            "succeeded": 0,
            "skipped": 0,
            "exhausted": 0,
            "flush_errors": 0,
        }
        self.queue.on_threshold = self.request_flush

    @property
    def flushing(self) -> bool:
        return self._flushing

    def request_flush(self) -> asyncio.Task | None:
        """
        Start a flush unless one is in flight or the queue is empty.

        Returns the dispatch task, or None when nothing was started.
        """
        if self._flushing or not len(self.queue):
            return None

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, deferring flush to the timer")
            return None

        self._flushing = True
        batch = self.queue.drain()
        self._last_flush = time.time()

        logger.debug("Flushing %d logs to server", len(batch))
        self._inflight = loop.create_task(self._run_dispatch(batch))
        return self._inflight

    async def _run_dispatch(self, batch: list[LogEvent]) -> None:
        self._stats["flushes"] += 1
        self._stats["events_flushed"] += len(batch)
        try:
            if self.dispatch is None:
                logger.warning("No dispatcher configured, discarding batch")
                return
            outcome = await self.dispatch(batch)
            self._stats[outcome.value] += 1
        except Exception as e:
            logger.error(f"Failed to flush telemetry batch: {e}")
            self._stats["flush_errors"] += 1
        finally:
            self._flushing = False
            self._inflight = None

    async def wait_idle(self) -> None:
        """Wait for the in-flight flush, if any."""
        task = self._inflight
        if task is not None:
            await asyncio.wait({task})

    async def flush(self) -> None:
        """Flush now and wait for the dispatch to finish."""
        await self.wait_idle()
        task = self.request_flush()
        if task is not None:
            await asyncio.wait({task})

    def start(self) -> None:
        """Start the timer on the running loop."""
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.get_running_loop().create_task(self.timer_loop())

    async def timer_loop(self) -> None:
        """
        Background loop that flushes on interval.

        Ensures events don't sit in the queue too long during low traffic.
        """
        self._running = True
        logger.info(f"Flush timer started (interval={self.flush_interval_seconds}s)")

        while self._running:
            try:
                await asyncio.sleep(self.flush_interval_seconds)

                if len(self.queue):
                    logger.debug("Flush interval reached, triggering flush")
                    self.request_flush()

            except asyncio.CancelledError:
                logger.info("Flush timer cancelled")
                break
            except Exception as e:
                logger.error(f"Flush timer error: {e}")

    async def stop(self) -> None:
        """Stop the timer. Queued events are left for the caller to drain."""
        self._running = False
        task = self._timer_task
        self._timer_task = None
        if task is not None and not task.done():
            task.cancel()
            await asyncio.wait({task})

    @property
    def timer_running(self) -> bool:
        return self._timer_task is not None and not self._timer_task.done()

    @property
    def stats(self) -> dict:
        """Get scheduler statistics."""
        return {
            **self._stats,
            "flushing": self._flushing,
            "queue_size": len(self.queue),
            "seconds_since_flush": time.time() - self._last_flush,
        }
