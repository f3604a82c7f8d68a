"""Drain-on-exit handling for SIGTERM / SIGINT."""

from __future__ import annotations

import asyncio
import logging
import signal
from dataclasses import dataclass, field
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class Drainable(Protocol):
    """Anything with a final drain (LogShipper in practice)."""

    async def drain_and_stop(self) -> None:
        ...


@dataclass
class ShutdownCoordinator:
    """
    Intercepts termination signals and drains the shipper before exit.

    On the first signal: the shipper's drain runs to completion (timer
    stopped, admission closed, remaining events dispatched), the previous
    signal handlers are restored and, with `reraise` on, the signal is
    delivered again so the process exits the way it would have without us.

    Usage:
        coordinator = ShutdownCoordinator(shipper)
        coordinator.install()          # inside the running loop
        ...
        await coordinator.wait()       # resolves after the drain
    """
    shipper: Drainable
    signals: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT)
    reraise: bool = True

    # Internal state
    _loop: asyncio.AbstractEventLoop | None = field(default=None, init=False)
    _previous: dict[signal.Signals, Any] = field(default_factory=dict, init=False)
    _task: asyncio.Task | None = field(default=None, init=False)
    _done: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    def install(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Register handlers on the loop. Unsupported signals are skipped."""
        self._loop = loop or asyncio.get_running_loop()

        for sig in self.signals:
            previous = signal.getsignal(sig)
            try:
                self._loop.add_signal_handler(sig, self.handle_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError) as e:
                # Windows event loops and non-main threads cannot do this
                logger.debug("Cannot install handler for %s: %s", sig.name, e)
                continue
            self._previous[sig] = previous

        if self._previous:
            names = ", ".join(sig.name for sig in self._previous)
            logger.info(f"Shutdown handlers installed for {names}")

    def uninstall(self) -> None:
        """Remove our handlers and put the previous ones back (idempotent)."""
        if self._loop is None:
            return

        for sig, previous in self._previous.items():
            try:
                self._loop.remove_signal_handler(sig)
                if previous is not None:
                    signal.signal(sig, previous)
            except (RuntimeError, ValueError) as e:
                logger.debug("Cannot restore handler for %s: %s", sig.name, e)
        self._previous.clear()

    @property
    def installed(self) -> bool:
        return bool(self._previous)

    def handle_signal(self, sig: signal.Signals) -> asyncio.Task:
        """Start the drain; repeated signals join the same drain."""
        if self._task is None:
            logger.info(f"Received {sig.name}, draining logsentinel queue")
            self._task = asyncio.get_running_loop().create_task(self._shutdown(sig))
        return self._task

    async def _shutdown(self, sig: signal.Signals) -> None:
        try:
            await self.shipper.drain_and_stop()
        except Exception as e:
            logger.warning("Failed to flush remaining logs during shutdown: %s", e)
        finally:
            self.uninstall()
            self._done.set()

        if self.reraise:
            signal.raise_signal(sig)

    @property
    def completed(self) -> bool:
        return self._done.is_set()

    async def wait(self) -> None:
        """Wait until a signal-triggered drain has finished."""
        await self._done.wait()
