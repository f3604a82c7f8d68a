"""Telemetry event types."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..sanitizer import Sanitizer


class DispatchOutcome(str, Enum):
    """Outcome of dispatching one batch."""
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"      # Config incomplete - nothing sent
    EXHAUSTED = "exhausted"  # Retry budget spent - batch dropped


def _random_suffix() -> str:
    return uuid.uuid4().hex[:9]


def generate_request_id() -> str:
    """Correlation id for a captured request."""
    return f"req_{int(time.time() * 1000)}_{_random_suffix()}"


def generate_trace_id() -> str:
    """Trace id for events that arrive without a correlation id."""
    return f"trace_{int(time.time() * 1000)}_{_random_suffix()}"


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class RequestSnapshot:
    """The inbound side of an observed HTTP transaction."""
    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    ip: str | None = None

    # Full URL as received (path + query string)
    url: str | None = None
    query: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ResponseSnapshot:
    """The outbound side of an observed HTTP transaction."""
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class ErrorSnapshot:
    """An exception raised while the host handled the request."""
    message: str
    stack: str | None = None
    status_code: int | None = None


@dataclass(frozen=True, slots=True)
class LogEvent:
    """
    A single "request observed" event.

    Created by the capture layer once the response is complete, then
    owned by the event queue until a flush takes it.
    """
    timestamp: str
    duration_ms: int
    request: RequestSnapshot
    response: ResponseSnapshot | None = None
    error: ErrorSnapshot | None = None
    correlation_id: str | None = None

    @classmethod
    def create(
        cls,
        request: RequestSnapshot,
        duration_ms: float,
        response: ResponseSnapshot | None = None,
        error: ErrorSnapshot | None = None,
        correlation_id: str | None = None,
    ) -> LogEvent:
        """Factory method stamping the current time."""
        return cls(
            timestamp=utc_timestamp(),
            duration_ms=int(round(duration_ms)),
            request=request,
            response=response,
            error=error,
            correlation_id=correlation_id,
        )


@dataclass(frozen=True, slots=True)
class WireEvent:
    """
    Transmission-ready form of a LogEvent.

    Flat fields; `to_dict()` produces the nested JSON body the collector
    expects. Built fresh for every dispatch attempt.
    """
    timestamp: str
    trace_id: str
    method: str
    path: str
    request_headers: dict[str, Any]
    request_body: str | None
    ip: str | None
    status: int
    response_headers: dict[str, Any]
    response_body: str | None
    duration_ms: int

    @classmethod
    def from_event(cls, event: LogEvent, sanitizer: Sanitizer) -> WireEvent:
        request = event.request
        response = event.response

        if response is not None:
            status = response.status_code
        elif event.error is not None and event.error.status_code:
            status = event.error.status_code
        else:
            status = 0

        return cls(
            timestamp=event.timestamp,
            trace_id=event.correlation_id or generate_trace_id(),
            method=request.method,
            path=request.path,
            request_headers=sanitizer.sanitize_headers(request.headers),
            request_body=sanitizer.serialize_body(request.body),
            ip=request.ip or None,
            status=status,
            response_headers=sanitizer.sanitize_headers(response.headers) if response else {},
            response_body=sanitizer.serialize_body(response.body) if response else None,
            duration_ms=event.duration_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "trace_id": self.trace_id,
            "request": {
                "method": self.method,
                "path": self.path,
                "headers": self.request_headers,
                "body": self.request_body,
                "ip": self.ip,
            },
            "response": {
                "status": self.status,
                "headers": self.response_headers,
                "body": self.response_body,
                "duration_ms": self.duration_ms,
            },
        }
