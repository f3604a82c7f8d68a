"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..events import WireEvent


class TelemetrySink(ABC):
    """
    Abstract base class for telemetry sinks.

    A sink performs exactly one transmission per call. Retry and ordering
    belong to the dispatcher, not the sink.
    """

    @abstractmethod
    async def send(self, event: WireEvent) -> None:
        """
        Transmit a single event.

        Raises:
            TransientDeliveryFailure: If the event was not accepted
        """
        ...

    async def start(self) -> None:
        """Initialize the sink (called on startup)."""
        pass

    async def stop(self) -> None:
        """Clean up the sink (called on shutdown)."""
        pass
