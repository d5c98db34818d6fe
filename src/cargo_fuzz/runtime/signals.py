"""Forwarding of stop signals into pool cancellation.

While a pool is running, SIGINT and SIGTERM no longer interrupt the event
loop at an arbitrary point. They are turned into a single "forced stop"
callback so the pool can tear its workers down before exiting.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Callable, Optional

from .process_runner import IS_WINDOWS

__all__ = ["StopSignalForwarder"]

logger = logging.getLogger(__name__)


class StopSignalForwarder:
    """Install SIGINT/SIGTERM handlers for the lifetime of a pool run.

    Example:
        ```python
        forwarder = StopSignalForwarder(on_stop=lambda signum: scope.cancel())
        forwarder.start()
        try:
            ...
        finally:
            forwarder.stop()
        ```

    Attributes:
        received: First stop signal received, if any
    """

    def __init__(self, on_stop: Callable[[int], None]) -> None:
        self._on_stop = on_stop
        self.received: Optional[int] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._original_handlers: dict[int, Any] = {}
        self._running = False

    def __enter__(self) -> "StopSignalForwarder":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def start(self) -> None:
        """Install handlers. Must be called from inside the event loop."""
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self._running = True

        if not IS_WINDOWS:
            for signum in (signal.SIGINT, signal.SIGTERM):
                self._original_handlers[signum] = signal.getsignal(signum)
                self._loop.add_signal_handler(signum, self._handle, signum)
        else:
            # Windows: only SIGINT can be caught, via signal.signal()
            self._original_handlers[signal.SIGINT] = signal.signal(
                signal.SIGINT,
                lambda sig, frame: self._loop.call_soon_threadsafe(self._handle, sig),
            )
        logger.debug("Stop signal handlers installed")

    def stop(self) -> None:
        """Restore the previous handlers."""
        if not self._running:
            return
        self._running = False

        for signum, original in self._original_handlers.items():
            try:
                if not IS_WINDOWS and self._loop is not None:
                    self._loop.remove_signal_handler(signum)
                if original is not None:
                    signal.signal(signum, original)
            except (OSError, RuntimeError, ValueError) as e:
                logger.debug(f"Error restoring handler for signal {signum}: {e}")
        self._original_handlers.clear()
        logger.debug("Stop signal handlers removed")

    def _handle(self, signum: int) -> None:
        if self.received is not None:
            logger.debug(f"Ignoring repeated stop signal {signum}")
            return
        self.received = signum
        logger.info(f"Received {signal.Signals(signum).name}, stopping all workers")
        self._on_stop(signum)
