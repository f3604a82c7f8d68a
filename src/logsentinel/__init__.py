"""
logsentinel - request telemetry shipping for ASGI applications

Captures every HTTP request/response, buffers the events in a bounded
queue and ships them to the logsentinel collector in the background,
without ever blocking or failing the host application.

Usage:
    from fastapi import FastAPI
    from logsentinel import setup_logsentinel

    app = FastAPI()
    setup_logsentinel(app)  # reads LOGSENTINEL_API_KEY / LOGSENTINEL_BASE_URL

    # Or drive the shipper yourself
    from logsentinel import LogShipper

    async with LogShipper() as shipper:
        shipper.push(event)
"""

import logging

__version__ = "0.1.0"

from .config import ClientConfig, Config, QueueConfig, RetryConfig, SanitizerConfig
from .middleware import LogSentinelMiddleware, setup_logsentinel
from .sanitizer import Sanitizer, cap_size, safe_stringify, sanitize, sanitize_headers
from .shipper import LogShipper
from .shutdown import ShutdownCoordinator
from .telemetry.events import (
    DispatchOutcome,
    ErrorSnapshot,
    LogEvent,
    RequestSnapshot,
    ResponseSnapshot,
    WireEvent,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Entry points
    "setup_logsentinel",
    "LogSentinelMiddleware",
    "LogShipper",
    "ShutdownCoordinator",
    # Configuration
    "Config",
    "ClientConfig",
    "QueueConfig",
    "RetryConfig",
    "SanitizerConfig",
    # Events
    "LogEvent",
    "RequestSnapshot",
    "ResponseSnapshot",
    "ErrorSnapshot",
    "WireEvent",
    "DispatchOutcome",
    # Sanitization
    "Sanitizer",
    "sanitize",
    "sanitize_headers",
    "cap_size",
    "safe_stringify",
]
