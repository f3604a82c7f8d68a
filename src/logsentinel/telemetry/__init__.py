"""Telemetry pipeline - non-blocking batching and delivery of request events."""

from .batcher import FlushScheduler
from .dispatcher import Dispatcher, RetryContext
from .events import (
    DispatchOutcome,
    ErrorSnapshot,
    LogEvent,
    RequestSnapshot,
    ResponseSnapshot,
    WireEvent,
)
from .queue import EventQueue

__all__ = [
    "DispatchOutcome",
    "Dispatcher",
    "ErrorSnapshot",
    "EventQueue",
    "FlushScheduler",
    "LogEvent",
    "RequestSnapshot",
    "ResponseSnapshot",
    "RetryContext",
    "WireEvent",
]
