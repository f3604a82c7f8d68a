"""ASGI capture middleware - turns HTTP traffic into LogEvents.

Works with any ASGI application; `setup_logsentinel()` wires it into a
Starlette or FastAPI app in one call.
"""

from __future__ import annotations

import json
import logging
import time
import traceback
from typing import TYPE_CHECKING, Any
from urllib.parse import parse_qsl

from starlette.datastructures import Headers, QueryParams
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .config import ClientConfig, Config
from .sanitizer import Sanitizer
from .telemetry.events import (
    ErrorSnapshot,
    LogEvent,
    RequestSnapshot,
    ResponseSnapshot,
    generate_request_id,
)
from .telemetry.sinks.base import TelemetrySink

if TYPE_CHECKING:
    from .shipper import LogShipper


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"
STATE_KEY = "logsentinel_request_id"


class _BodyBuffer:
    """Accumulates body chunks up to a limit, remembering overflow."""

    __slots__ = ("limit", "chunks", "size", "overflow")

    def __init__(self, limit: int):
        self.limit = limit
        self.chunks: list[bytes] = []
        self.size = 0
        self.overflow = False

    def add(self, chunk: bytes) -> None:
        if not chunk or self.overflow:
            return
        self.size += len(chunk)
        if self.size > self.limit:
            self.overflow = True
            self.chunks.clear()
            return
        self.chunks.append(chunk)

    def getvalue(self) -> bytes:
        return b"".join(self.chunks)


class _Transaction:
    """Capture state for one HTTP request/response cycle."""

    def __init__(self, scope: Scope, sanitizer: Sanitizer):
        self.sanitizer = sanitizer
        self.started = time.perf_counter()
        self.request_headers = Headers(scope=scope)
        self.request_id = self.request_headers.get(REQUEST_ID_HEADER) or generate_request_id()

        limit = sanitizer.config.max_capture_bytes
        self.request_body = _BodyBuffer(limit)
        self.response_body = _BodyBuffer(limit)

        self.status_code: int | None = None
        self.response_headers: Headers | None = None
        self.error: ErrorSnapshot | None = None
        self.finished = False

        client = scope.get("client")
        path = scope.get("path", "")
        query_string = scope.get("query_string", b"").decode("latin-1")

        self.method = scope.get("method", "GET")
        self.path = path
        self.url = f"{path}?{query_string}" if query_string else path
        self.query = dict(QueryParams(query_string))
        self.ip = client[0] if client else None

    def decode_body(self, raw: bytes, overflow: bool, content_type: str | None) -> Any:
        placeholder = self.sanitizer.body_placeholder(content_type)
        if placeholder:
            return placeholder
        if overflow:
            return self.sanitizer.config.oversize_placeholder
        if not raw:
            return None

        text = raw.decode("utf-8", errors="replace")
        content_type = (content_type or "").lower()

        if "json" in content_type:
            try:
                parsed = json.loads(text)
            except (ValueError, RecursionError):
                return self.sanitizer.cap_size(text)
            return self.sanitizer.cap_size(self.sanitizer.sanitize(parsed))

        if "application/x-www-form-urlencoded" in content_type:
            form = dict(parse_qsl(text, keep_blank_values=True))
            return self.sanitizer.cap_size(self.sanitizer.sanitize(form))

        return self.sanitizer.cap_size(text)

    def build_event(self) -> LogEvent:
        request = RequestSnapshot(
            method=self.method,
            path=self.path,
            url=self.url,
            query=self.query,
            headers=self.sanitizer.sanitize_headers(dict(self.request_headers.items())),
            body=self.decode_body(
                self.request_body.getvalue(),
                self.request_body.overflow,
                self.request_headers.get("content-type"),
            ),
            ip=self.ip,
        )

        response = None
        if self.status_code is not None:
            headers = self.response_headers or Headers()
            content_type = headers.get("content-type")
            response = ResponseSnapshot(
                status_code=self.status_code,
                headers=self.sanitizer.sanitize_headers(dict(headers.items())),
                body=self.decode_body(
                    self.response_body.getvalue(),
                    self.response_body.overflow,
                    content_type,
                ),
                content_type=content_type,
            )

        return LogEvent.create(
            request=request,
            duration_ms=(time.perf_counter() - self.started) * 1000,
            response=response,
            error=self.error,
            correlation_id=self.request_id,
        )


class LogSentinelMiddleware:
    """
    Pure ASGI middleware capturing every HTTP request/response.

    - http: records request and response (headers sanitized, bodies
      sanitized and capped, binary/multipart replaced by placeholders) and
      pushes one LogEvent when the response completes
    - lifespan: starts the shipper on startup, drains it on shutdown

    Capture problems are logged and swallowed; the wrapped application
    never sees them.
    """

    def __init__(self, app: ASGIApp, shipper: LogShipper):
        self.app = app
        self.shipper = shipper
        self.sanitizer = shipper.sanitizer

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "lifespan":
            await self.app(scope, self._lifespan_receive(receive), send)
            return

        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            transaction = _Transaction(scope, self.sanitizer)
            scope.setdefault("state", {})[STATE_KEY] = transaction.request_id
        except Exception as e:
            logger.warning("Failed to capture request: %s", e)
            await self.app(scope, receive, send)
            return

        logger.debug("Request started: %s %s", transaction.method, transaction.path)

        async def receive_wrapper() -> Message:
            message = await receive()
            if message["type"] == "http.request":
                transaction.request_body.add(message.get("body", b""))
            return message

        async def send_wrapper(message: Message) -> None:
            await send(message)
            try:
                if message["type"] == "http.response.start":
                    transaction.status_code = message["status"]
                    transaction.response_headers = Headers(raw=message.get("headers", []))
                elif message["type"] == "http.response.body":
                    transaction.response_body.add(message.get("body", b""))
                    if not message.get("more_body", False):
                        self._finish(transaction)
            except Exception as e:
                logger.warning("Failed to capture response: %s", e)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except Exception as exc:
            transaction.error = ErrorSnapshot(
                message=str(exc),
                stack=traceback.format_exc(),
                status_code=500,
            )
            logger.debug("Error occurred: %s (request %s)", exc, transaction.request_id)
            self._finish(transaction)
            raise

        self._finish(transaction)

    def _finish(self, transaction: _Transaction) -> None:
        if transaction.finished:
            return
        transaction.finished = True

        try:
            event = transaction.build_event()
        except Exception as e:
            logger.warning(
                "Failed to build log event for %s %s: %s",
                transaction.method,
                transaction.path,
                e,
            )
            return

        logger.debug(
            "Request completed in %dms (status %s)",
            event.duration_ms,
            transaction.status_code,
        )
        try:
            self.shipper.push(event)
        except Exception as e:
            logger.warning("Failed to push log to queue: %s", e)

    def _lifespan_receive(self, receive: Receive) -> Receive:
        async def receive_wrapper() -> Message:
            message = await receive()
            try:
                if message["type"] == "lifespan.startup":
                    await self.shipper.start()
                elif message["type"] == "lifespan.shutdown":
                    await self.shipper.drain_and_stop()
            except Exception as e:
                logger.warning("Logsentinel lifespan hook failed: %s", e)
            return message

        return receive_wrapper


def setup_logsentinel(
    app: Any,
    config: Config | None = None,
    *,
    api_key: str | None = None,
    base_url: str | None = None,
    debug: bool | None = None,
    sink: TelemetrySink | None = None,
) -> LogShipper:
    """
    Set up logsentinel on a Starlette or FastAPI app.

    Explicit `api_key` / `base_url` / `debug` override the environment.
    The shipper starts and drains with the app's lifespan.

    Usage:
        app = FastAPI()
        setup_logsentinel(app)
    """
    from .shipper import LogShipper

    config = config or Config()
    if api_key or base_url or debug is not None:
        config.client = ClientConfig.resolve(
            api_key=api_key or config.client.api_key,
            base_url=base_url or config.client.base_url,
            debug=config.client.debug if debug is None else debug,
        )

    shipper = LogShipper(config=config, sink=sink)

    try:
        app.add_middleware(LogSentinelMiddleware, shipper=shipper)
        logger.debug("Logsentinel middleware registered")
    except Exception as e:
        logger.warning("Failed to setup logsentinel: %s", e)

    return shipper
