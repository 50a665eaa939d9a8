"""In-memory registry of live agent protocol sessions."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import anyio
from anyio.abc import TaskGroup

from ..services.errors import SessionNotFoundError, TransportError
from .transport import TransportBridge, UnifiedBridge

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionRegistry:
    """Maps session ids to bridges.

    ``open``, ``get`` and ``close`` never await, so on a single event loop each
    one completes without interleaving with other requests. Sessions live until
    an explicit close; there is no expiry sweep.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, TransportBridge] = {}
        self._task_group: Optional[TaskGroup] = None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def open(self, bridge: TransportBridge) -> TransportBridge:
        if bridge.session_id in self._sessions:
            raise TransportError(f"Session id collision: {bridge.session_id}")
        bridge.mark_open()
        self._sessions[bridge.session_id] = bridge
        logger.info(
            "Session opened",
            extra={"session_id": bridge.session_id, "transport": type(bridge).__name__},
        )
        return bridge

    def get(self, session_id: Optional[str]) -> TransportBridge:
        bridge = self._sessions.get(session_id) if session_id else None
        if bridge is None or bridge.closed:
            logger.warning("Message received for unknown session", extra={"session_id": session_id})
            raise SessionNotFoundError(session_id)
        return bridge

    def close(self, session_id: str) -> bool:
        bridge = self._sessions.pop(session_id, None)
        if bridge is None:
            return False
        bridge.close()
        logger.info("Session closed", extra={"session_id": session_id})
        return True

    def close_all(self) -> int:
        session_ids = list(self._sessions)
        for session_id in session_ids:
            self.close(session_id)
        return len(session_ids)

    @asynccontextmanager
    async def run(self) -> AsyncIterator["SessionRegistry"]:
        """Own the task group that serves unified-binding sessions."""
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield self
            finally:
                self._task_group = None
                closed = self.close_all()
                if closed:
                    logger.info("Closed sessions on shutdown", extra={"count": closed})

    def spawn(self, bridge: UnifiedBridge) -> UnifiedBridge:
        """Register ``bridge`` and serve it in the background."""
        if self._task_group is None:
            raise TransportError("Session registry is not running")
        self.open(bridge)
        self._task_group.start_soon(self._serve, bridge)
        return bridge

    async def _serve(self, bridge: TransportBridge) -> None:
        try:
            await bridge.serve()
        except Exception:  # noqa: BLE001 - one broken session must not stop the registry
            logger.exception("Session task failed", extra={"session_id": bridge.session_id})
        finally:
            self.close(bridge.session_id)


__all__ = ["SessionRegistry", "new_session_id"]
