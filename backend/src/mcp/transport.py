"""Bridges between HTTP requests and an in-process MCP server session.

Each bridge owns a pair of memory streams: inbound carries client JSON-RPC
messages to ``Server.run``; outbound carries the server's replies back. The
push-channel bridge drains outbound onto a ``text/event-stream`` response; the
unified bridge hands each reply to the HTTP request that is waiting for it.
"""

from __future__ import annotations

import enum
import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

import anyio
from mcp import types
from mcp.server.lowlevel import Server
from mcp.shared.message import SessionMessage
from sse_starlette.sse import EventSourceResponse
from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from ..services.errors import SessionNotFoundError, TransportError

logger = logging.getLogger(__name__)

STREAM_BUFFER_SIZE = 32
PING_INTERVAL_SECONDS = 15


class SessionState(str, enum.Enum):
    HANDSHAKING = "handshaking"
    OPEN = "open"
    CLOSED = "closed"


def encode_message(message: types.JSONRPCMessage) -> str:
    return message.model_dump_json(by_alias=True, exclude_none=True)


class TransportBridge:
    """One agent session: memory streams plus the server loop that consumes them."""

    def __init__(self, session_id: str, server: Server):
        self.session_id = session_id
        self.state = SessionState.HANDSHAKING
        self._server = server
        self._init_options = server.create_initialization_options()
        self._inbound_send, self._inbound_recv = anyio.create_memory_object_stream(
            STREAM_BUFFER_SIZE
        )
        self._outbound_send, self._outbound_recv = anyio.create_memory_object_stream(
            STREAM_BUFFER_SIZE
        )
        self.failure: Optional[TransportError] = None

    @property
    def closed(self) -> bool:
        return self.state is SessionState.CLOSED

    def mark_open(self) -> None:
        if self.state is not SessionState.HANDSHAKING:
            raise TransportError(
                f"Session {self.session_id} cannot open from state {self.state.value}"
            )
        self.state = SessionState.OPEN

    async def serve(self) -> None:
        """Run the MCP server until the inbound stream is closed."""
        try:
            await self._server.run(self._inbound_recv, self._outbound_send, self._init_options)
        except Exception as exc:  # noqa: BLE001 - reported in-band, session is torn down
            logger.exception("MCP session crashed", extra={"session_id": self.session_id})
            self.failure = TransportError(f"Session transport failed: {exc}")
        finally:
            self._outbound_send.close()

    async def submit(self, message: types.JSONRPCMessage) -> None:
        """Forward one client message to the server loop, in arrival order."""
        if self.closed:
            raise SessionNotFoundError(self.session_id)
        try:
            await self._inbound_send.send(SessionMessage(message))
        except (anyio.ClosedResourceError, anyio.BrokenResourceError) as exc:
            raise SessionNotFoundError(self.session_id) from exc

    def close(self) -> None:
        """Synchronous teardown; the server loop exits once inbound drains."""
        if self.state is SessionState.CLOSED:
            return
        self.state = SessionState.CLOSED
        self._inbound_send.close()


class PushChannelBridge(TransportBridge):
    """Server-sent events binding: replies stream on the GET response."""

    def __init__(self, session_id: str, server: Server, endpoint_path: str):
        super().__init__(session_id, server)
        self.endpoint_url = f"{endpoint_path}?sessionId={session_id}"

    async def frames(self) -> AsyncIterator[Dict[str, Any]]:
        yield {"event": "endpoint", "data": self.endpoint_url}
        async with self._outbound_recv:
            async for session_message in self._outbound_recv:
                yield {"event": "message", "data": encode_message(session_message.message)}
        if self.failure is not None:
            yield {"event": "error", "data": json.dumps(self.failure.to_dict())}


class UnifiedBridge(TransportBridge):
    """Single-endpoint binding: each POST waits for the reply to its own request."""

    response_timeout: float = 60.0

    def __init__(self, session_id: str, server: Server):
        super().__init__(session_id, server)
        self._waiters: Dict[types.RequestId, Any] = {}

    async def serve(self) -> None:
        async with anyio.create_task_group() as tg:
            tg.start_soon(self._route_replies)
            await super().serve()
        for waiter in self._waiters.values():
            waiter.close()
        self._waiters.clear()

    async def _route_replies(self) -> None:
        async with self._outbound_recv:
            async for session_message in self._outbound_recv:
                root = session_message.message.root
                if isinstance(root, (types.JSONRPCResponse, types.JSONRPCError)):
                    waiter = self._waiters.pop(root.id, None)
                    if waiter is not None:
                        waiter.send_nowait(session_message.message)
                        waiter.close()
                        continue
                logger.debug(
                    "Dropping unsolicited server message",
                    extra={"session_id": self.session_id, "kind": type(root).__name__},
                )

    async def exchange(self, message: types.JSONRPCMessage) -> Optional[types.JSONRPCMessage]:
        """Submit ``message``; return the matching reply for requests, else None."""
        root = message.root
        if not isinstance(root, types.JSONRPCRequest):
            await self.submit(message)
            return None

        send_stream, receive_stream = anyio.create_memory_object_stream(1)
        self._waiters[root.id] = send_stream
        try:
            await self.submit(message)
            with anyio.fail_after(self.response_timeout):
                async with receive_stream:
                    return await receive_stream.receive()
        except anyio.EndOfStream as exc:
            raise TransportError("Session closed before the server replied") from exc
        except TimeoutError as exc:
            raise TransportError("Timed out waiting for the server reply") from exc
        finally:
            self._waiters.pop(root.id, None)


class PushChannelResponse(Response):
    """Streams a push-channel session and deregisters it when either side ends."""

    def __init__(self, bridge: PushChannelBridge, registry: Any):
        super().__init__(status_code=200)
        self.bridge = bridge
        self.registry = registry

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        stream = EventSourceResponse(
            self.bridge.frames(), ping=PING_INTERVAL_SECONDS, sep="\n"
        )
        try:
            async with anyio.create_task_group() as tg:

                async def run_stream() -> None:
                    await stream(scope, receive, send)
                    # Deregister before serve() unwinds; a shielded tool call may still run.
                    self.registry.close(self.bridge.session_id)
                    tg.cancel_scope.cancel()

                tg.start_soon(run_stream)
                await self.bridge.serve()
        finally:
            self.registry.close(self.bridge.session_id)


__all__ = [
    "SessionState",
    "TransportBridge",
    "PushChannelBridge",
    "UnifiedBridge",
    "PushChannelResponse",
    "encode_message",
]
