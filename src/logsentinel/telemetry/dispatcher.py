"""Batch dispatcher with retry and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..config import ClientConfig, RetryConfig
from ..errors import RetryBudgetExhausted, TransientDeliveryFailure
from ..sanitizer import Sanitizer
from .events import DispatchOutcome, LogEvent, WireEvent
from .sinks.base import TelemetrySink


logger = logging.getLogger(__name__)


@dataclass
class RetryContext:
    """Attempt counter (1-based) for the batch being delivered."""
    batch: list[LogEvent]
    attempt: int = 1


@dataclass
class Dispatcher:
    """
    Delivers a batch to the sink, one event at a time, in order.

    State machine per batch:
        Attempting(n) -> Succeeded
                      -> RetryScheduled(n+1)  (n < max_attempts)
                      -> Exhausted            (n == max_attempts)

    A failed attempt restarts from the first event of the batch, so events
    delivered before the failure may be delivered again. Nothing is ever
    raised to the caller; exhaustion is reported through the logger.
    """
    client: ClientConfig
    sink: TelemetrySink
    retry: RetryConfig = field(default_factory=RetryConfig)
    sanitizer: Sanitizer = field(default_factory=Sanitizer)

    # Backoff delay function (injectable for tests)
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._stats = {
            "batches_sent": 0,
            "events_sent": 0,
            "batches_skipped": 0,
            "batches_dropped": 0,
            "retries": 0,
        }

    async def send(self, batch: list[LogEvent], attempt: int = 1) -> DispatchOutcome:
        """Deliver `batch`, retrying transient failures within the budget."""
        if not self.client.is_valid:
            logger.debug("Config invalid, skipping send of %d events", len(batch))
            self._stats["batches_skipped"] += 1
            return DispatchOutcome.SKIPPED

        if not batch:
            return DispatchOutcome.SUCCEEDED

        context = RetryContext(batch=list(batch), attempt=attempt)

        while True:
            try:
                delivered = await self._attempt(context)
            except TransientDeliveryFailure as e:
                logger.warning("Batch send failed (attempt %d): %s", context.attempt, e)

                if context.attempt >= self.retry.max_attempts:
                    exhausted = RetryBudgetExhausted(context.attempt, len(context.batch), e)
                    logger.error(str(exhausted))
                    self._stats["batches_dropped"] += 1
                    return DispatchOutcome.EXHAUSTED

                delay = self.retry.delay_for(context.attempt)
                logger.debug("Retrying in %.0fms...", delay * 1000)
                await self.sleep(delay)
                context.attempt += 1
                self._stats["retries"] += 1
                continue
            except Exception as e:
                logger.error(f"Unexpected error while sending batch, dropping it: {e}")
                self._stats["batches_dropped"] += 1
                return DispatchOutcome.EXHAUSTED

            logger.debug(
                "Batch sent successfully. %d/%d logs delivered", delivered, len(context.batch)
            )
            self._stats["batches_sent"] += 1
            self._stats["events_sent"] += delivered
            return DispatchOutcome.SUCCEEDED

    async def _attempt(self, context: RetryContext) -> int:
        """One pass over the whole batch. Returns the number delivered."""
        logger.debug(
            "Sending batch attempt %d/%d (%d events to %s)",
            context.attempt,
            self.retry.max_attempts,
            len(context.batch),
            self.client.logs_endpoint,
        )

        wire_events = [WireEvent.from_event(event, self.sanitizer) for event in context.batch]

        if wire_events and logger.isEnabledFor(logging.DEBUG):
            sample = wire_events[0]
            logger.debug(
                "Sample transformed log entry: trace_id=%s %s %s status=%d duration=%dms",
                sample.trace_id,
                sample.method,
                sample.path,
                sample.status,
                sample.duration_ms,
            )

        delivered = 0
        for wire in wire_events:
            await self.sink.send(wire)
            delivered += 1
        return delivered

    @property
    def stats(self) -> dict:
        """Get dispatcher statistics."""
        return dict(self._stats)
