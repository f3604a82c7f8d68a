"""Shared test fixtures for logsentinel tests."""

from __future__ import annotations

import asyncio

import pytest

from logsentinel.config import ClientConfig, Config, QueueConfig, RetryConfig
from logsentinel.errors import TransientDeliveryFailure
from logsentinel.telemetry.events import LogEvent, RequestSnapshot, ResponseSnapshot, WireEvent
from logsentinel.telemetry.sinks.base import TelemetrySink


# =============================================================================
# Event helpers
# =============================================================================

def make_event(index: int = 0, **kwargs) -> LogEvent:
    """A completed GET /items/<index> transaction."""
    request = kwargs.pop("request", None) or RequestSnapshot(
        method="GET",
        path=f"/items/{index}",
        headers={"accept": "application/json"},
        ip="127.0.0.1",
    )
    response = kwargs.pop("response", None) or ResponseSnapshot(
        status_code=200,
        headers={"content-type": "application/json"},
        body={"id": index},
    )
    return LogEvent.create(
        request=request,
        response=response,
        duration_ms=kwargs.pop("duration_ms", 12.4),
        correlation_id=kwargs.pop("correlation_id", f"req_{index}"),
        **kwargs,
    )


@pytest.fixture
def event_factory():
    return make_event


# =============================================================================
# Sinks
# =============================================================================

class RecordingSink(TelemetrySink):
    """
    In-memory sink recording every transmission.

    `fail_times` makes the first N sends fail; `fail_always` makes every send
    fail. `gate` (an asyncio.Event) holds each send until it is set.
    """

    def __init__(self, fail_times: int = 0, fail_always: bool = False):
        self.sent: list[WireEvent] = []
        self.calls = 0
        self.fail_times = fail_times
        self.fail_always = fail_always
        self.gate: asyncio.Event | None = None
        self.active = 0
        self.max_active = 0
        self.started = False
        self.stopped = False

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    async def send(self, event: WireEvent) -> None:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.fail_always or self.calls <= self.fail_times:
                raise TransientDeliveryFailure("simulated failure", status_code=503)
            self.sent.append(event)
        finally:
            self.active -= 1

    @property
    def trace_ids(self) -> list[str]:
        return [event.trace_id for event in self.sent]


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


class SleepRecorder:
    """Stands in for asyncio.sleep in backoff; records the requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


# =============================================================================
# Config
# =============================================================================

@pytest.fixture
def client_config() -> ClientConfig:
    return ClientConfig(api_key="test-key", base_url="https://collector.test", debug=False)


@pytest.fixture
def config(client_config) -> Config:
    """Valid config; the timer is long enough never to fire during a test."""
    return Config(
        client=client_config,
        queue=QueueConfig(flush_interval_seconds=60.0),
        retry=RetryConfig(),
    )
