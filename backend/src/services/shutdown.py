"""Signal handling with a bounded grace period."""

from __future__ import annotations

import logging
import os
import signal
import threading
from types import FrameType
from typing import Callable, List, Optional

import uvicorn

logger = logging.getLogger(__name__)

FORCED_EXIT_CODE = 1


def _signal_name(sig: int) -> str:
    try:
        return signal.Signals(sig).name
    except ValueError:
        return str(sig)


class GracefulServer(uvicorn.Server):
    """uvicorn server that force-exits when shutdown overruns its grace period.

    Callbacks registered with ``on_shutdown`` run once on the first signal,
    before uvicorn starts draining connections.
    """

    def __init__(
        self,
        config: uvicorn.Config,
        *,
        grace_seconds: float = 10.0,
        exit_func: Callable[[int], None] = os._exit,
    ) -> None:
        super().__init__(config)
        self.grace_seconds = grace_seconds
        self._exit_func = exit_func
        self._shutdown_callbacks: List[Callable[[], object]] = []
        self._watchdog: Optional[threading.Timer] = None

    def on_shutdown(self, callback: Callable[[], object]) -> None:
        self._shutdown_callbacks.append(callback)

    def handle_exit(self, sig: int, frame: Optional[FrameType]) -> None:
        if self._watchdog is None:
            logger.info("Shutting down...", extra={"signal": _signal_name(sig)})
            for callback in self._shutdown_callbacks:
                try:
                    callback()
                except Exception:  # noqa: BLE001 - shutdown continues regardless
                    logger.exception("Shutdown callback failed")
            self._watchdog = threading.Timer(self.grace_seconds, self._force_exit)
            self._watchdog.daemon = True
            self._watchdog.start()
        super().handle_exit(sig, frame)

    def _force_exit(self) -> None:
        logger.error("Could not close connections in time, forcefully shutting down")
        self._exit_func(FORCED_EXIT_CODE)

    def cancel_watchdog(self) -> None:
        if self._watchdog is not None:
            self._watchdog.cancel()


__all__ = ["GracefulServer", "FORCED_EXIT_CODE"]
