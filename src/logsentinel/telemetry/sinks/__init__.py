"""Telemetry sinks - destinations for wire events."""

from .base import TelemetrySink
from .http import HttpSink

__all__ = [
    "TelemetrySink",
    "HttpSink",
]
