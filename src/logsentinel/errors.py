"""Exceptions raised inside the telemetry pipeline.

None of these ever reach the instrumented application: they are raised and
handled between the dispatcher and its sink, or used to describe a failure
in a diagnostic log line.
"""

from __future__ import annotations


class LogSentinelError(Exception):
    """Base exception for logsentinel errors."""
    pass


class ConfigInvalid(LogSentinelError):
    """Endpoint or credential missing - transmission is disabled."""

    def __init__(self, missing: list[str]):
        super().__init__(f"Missing configuration: {', '.join(missing)}")
        self.missing = missing


class TransientDeliveryFailure(LogSentinelError):
    """A single transmission failed (network error, timeout or non-2xx)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (status: {self.status_code})"


class RetryBudgetExhausted(LogSentinelError):
    """Every attempt for a batch failed; the batch is dropped."""

    def __init__(self, attempts: int, batch_size: int, last_error: Exception | None = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(
            f"Failed to send batch of {batch_size} events after {attempts} attempts{detail}"
        )
        self.attempts = attempts
        self.batch_size = batch_size
        self.last_error = last_error


class SanitizationFailure(LogSentinelError):
    """Redaction or serialization of a payload failed."""
    pass
