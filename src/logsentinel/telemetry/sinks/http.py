"""HTTP sink posting events to the collector."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from ... import __version__
from ...config import ClientConfig
from ...errors import TransientDeliveryFailure
from ..events import WireEvent
from .base import TelemetrySink


logger = logging.getLogger(__name__)

USER_AGENT = f"logsentinel-python/{__version__}"


@dataclass
class HttpSink(TelemetrySink):
    """
    Sink that POSTs each event as JSON to `{base_url}/api/sdk/logs`.

    Config:
        client: Credentials and endpoint (read on every send)
        timeout_seconds: Per-request timeout
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """
    client: ClientConfig = field(default_factory=ClientConfig)
    timeout_seconds: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    # Internal state
    _http: httpx.AsyncClient | None = field(default=None, init=False)
    _stats: dict = field(default_factory=dict, init=False)

    def __post_init__(self):
        self._stats = {
            "sent": 0,
            "failed": 0,
        }

    async def start(self) -> None:
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self.transport,
            )

    async def stop(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    def _get_headers(self) -> dict[str, str]:
        """Build request headers."""
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.client.api_key}",
            "User-Agent": USER_AGENT,
        }

    async def send(self, event: WireEvent) -> None:
        if self._http is None:
            await self.start()

        try:
            response = await self._http.post(
                self.client.logs_endpoint,
                json=event.to_dict(),
                headers=self._get_headers(),
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self._stats["failed"] += 1
            raise TransientDeliveryFailure(f"{type(e).__name__}: {e}") from e

        if not response.is_success:
            self._stats["failed"] += 1
            raise TransientDeliveryFailure(
                f"Collector rejected event {event.trace_id}",
                status_code=response.status_code,
            )

        self._stats["sent"] += 1

    @property
    def stats(self) -> dict[str, Any]:
        return {
            **self._stats,
            "endpoint": self.client.logs_endpoint if self.client.base_url else None,
        }
