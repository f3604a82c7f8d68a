"""LogShipper - wires queue, scheduler, dispatcher and sink together."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from .config import Config
from .logging_config import setup_logging
from .sanitizer import Sanitizer
from .shutdown import ShutdownCoordinator
from .telemetry.batcher import FlushScheduler
from .telemetry.dispatcher import Dispatcher
from .telemetry.events import LogEvent
from .telemetry.queue import EventQueue
from .telemetry.sinks.base import TelemetrySink
from .telemetry.sinks.http import HttpSink


logger = logging.getLogger(__name__)


@dataclass
class LogShipper:
    """
    Ships captured request events to the collector.

    Lifecycle:
        shipper = LogShipper(config=Config())
        await shipper.start()
        shipper.push(event)          # from request handling, never blocks
        await shipper.drain_and_stop()

    Or as an async context manager:
        async with LogShipper() as shipper:
            shipper.push(event)

    Each instance owns its own queue, timer and HTTP client; nothing is
    shared between instances.
    """
    config: Config = field(default_factory=Config)

    # Destination; defaults to an HttpSink built from `config`
    sink: TelemetrySink | None = None

    # Backoff delay function (injectable for tests)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    # Components (built in __post_init__)
    sanitizer: Sanitizer = field(init=False)
    queue: EventQueue = field(init=False)
    dispatcher: Dispatcher = field(init=False)
    scheduler: FlushScheduler = field(init=False)

    _started: bool = field(default=False, init=False)
    _drain_task: asyncio.Task | None = field(default=None, init=False)
    _coordinator: ShutdownCoordinator | None = field(default=None, init=False)

    def __post_init__(self):
        if self.sink is None:
            self.sink = HttpSink(
                client=self.config.client,
                timeout_seconds=self.config.retry.request_timeout_seconds,
            )

        self.sanitizer = Sanitizer(self.config.sanitizer)
        self.queue = EventQueue(
            capacity=self.config.queue.capacity,
            batch_size=self.config.queue.batch_size,
        )
        self.dispatcher = Dispatcher(
            client=self.config.client,
            sink=self.sink,
            retry=self.config.retry,
            sanitizer=self.sanitizer,
            sleep=self.sleep,
        )
        self.scheduler = FlushScheduler(
            queue=self.queue,
            dispatch=self.dispatcher.send,
            flush_interval_seconds=self.config.queue.flush_interval_seconds,
        )

    async def start(
        self,
        install_signal_handlers: bool = False,
        signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT),
        reraise: bool = True,
    ) -> None:
        """
        Start the flush timer and open the sink (idempotent).

        Args:
            install_signal_handlers: Drain on `signals`. Leave off when the
                host server (uvicorn, hypercorn) owns signal handling and
                drives shutdown through ASGI lifespan instead.
            signals: Signals that trigger the drain
            reraise: Deliver the signal again once drained, so the process
                exits the way it would have without us
        """
        if self._started:
            return
        self._started = True

        setup_logging(self.config.client.debug)
        self.config.client.warn_if_incomplete()

        await self.sink.start()
        self.scheduler.start()

        if install_signal_handlers:
            self._coordinator = ShutdownCoordinator(self, signals=signals, reraise=reraise)
            self._coordinator.install()

        logger.info(
            f"Log shipper started (capacity={self.queue.capacity}, "
            f"batch_size={self.queue.batch_size}, "
            f"interval={self.scheduler.flush_interval_seconds}s)"
        )

    def push(self, event: LogEvent) -> None:
        """Queue an event. Never blocks, never raises."""
        try:
            self.queue.push(event)
        except Exception as e:
            logger.warning("Failed to push log to queue: %s", e)

    async def flush(self) -> None:
        """Dispatch whatever is queued now and wait for it."""
        await self.scheduler.flush()

    async def drain_and_stop(self) -> None:
        """
        Stop the timer, close admission and deliver what remains.

        Safe to call more than once or concurrently (signal handler and
        ASGI lifespan may both call it); every caller waits for the same
        drain.
        """
        if self._drain_task is None:
            self._drain_task = asyncio.ensure_future(self._drain())
        await asyncio.shield(self._drain_task)

    async def _drain(self) -> None:
        logger.debug("Shutting down logsentinel queue...")

        await self.scheduler.stop()
        self.queue.close()

        remaining = self.queue.size()
        if remaining:
            logger.debug("Flushing %d remaining logs before shutdown", remaining)
        await self.scheduler.flush()

        try:
            await self.sink.stop()
        except Exception as e:
            logger.warning("Failed to close sink: %s", e)

        if self._coordinator is not None:
            self._coordinator.uninstall()

        logger.info(f"Log shipper stopped. Stats: {self.stats}")

    @property
    def coordinator(self) -> ShutdownCoordinator | None:
        """Signal coordinator installed by `start()`, if any."""
        return self._coordinator

    @property
    def stopped(self) -> bool:
        return self._drain_task is not None and self._drain_task.done()

    def size(self) -> int:
        """Current queue size."""
        return self.queue.size()

    @property
    def stats(self) -> dict:
        return {
            "queue": self.queue.stats,
            "scheduler": self.scheduler.stats,
            "dispatcher": self.dispatcher.stats,
        }

    async def __aenter__(self) -> LogShipper:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.drain_and_stop()
