"""Unit tests for the session registry and transport bridges."""

import json

import anyio
import pytest
from mcp import types

from backend.src.mcp.server import SERVER_NAME, build_agent_server
from backend.src.mcp.sessions import SessionRegistry, new_session_id
from backend.src.mcp.transport import (
    PushChannelBridge,
    SessionState,
    UnifiedBridge,
)
from backend.src.services.card_store import CardStore
from backend.src.services.errors import SessionNotFoundError, TransportError
from backend.src.services.tools import build_dispatcher
from backend.tests.fakes import FakeSupabase

INIT_PARAMS = {
    "protocolVersion": types.LATEST_PROTOCOL_VERSION,
    "capabilities": {},
    "clientInfo": {"name": "pytest", "version": "0.0.1"},
}


def request(request_id, method, params=None) -> types.JSONRPCMessage:
    return types.JSONRPCMessage(
        types.JSONRPCRequest(jsonrpc="2.0", id=request_id, method=method, params=params)
    )


def notification(method) -> types.JSONRPCMessage:
    return types.JSONRPCMessage(types.JSONRPCNotification(jsonrpc="2.0", method=method))


@pytest.fixture
def server():
    return build_agent_server(build_dispatcher(CardStore(FakeSupabase())))


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


class TestSessionRegistry:
    def test_session_ids_are_unique(self) -> None:
        assert len({new_session_id() for _ in range(100)}) == 100

    def test_open_moves_bridge_to_open(self, registry, server) -> None:
        bridge = PushChannelBridge("abc", server, "/messages")
        assert bridge.state is SessionState.HANDSHAKING

        registry.open(bridge)

        assert bridge.state is SessionState.OPEN
        assert "abc" in registry
        assert registry.get("abc") is bridge

    def test_open_rejects_collision(self, registry, server) -> None:
        registry.open(PushChannelBridge("abc", server, "/messages"))

        with pytest.raises(TransportError):
            registry.open(PushChannelBridge("abc", server, "/messages"))

    @pytest.mark.parametrize("session_id", [None, "", "unknown"])
    def test_get_unknown_session(self, registry, session_id) -> None:
        with pytest.raises(SessionNotFoundError) as excinfo:
            registry.get(session_id)

        assert excinfo.value.status_code == 404
        assert excinfo.value.message == "Session not found"

    def test_close_is_idempotent(self, registry, server) -> None:
        bridge = registry.open(PushChannelBridge("abc", server, "/messages"))

        assert registry.close("abc") is True
        assert registry.close("abc") is False
        assert bridge.closed
        assert len(registry) == 0

    def test_close_all(self, registry, server) -> None:
        for session_id in ("a", "b", "c"):
            registry.open(PushChannelBridge(session_id, server, "/messages"))

        assert registry.close_all() == 3
        assert len(registry) == 0

    def test_spawn_requires_running_registry(self, registry, server) -> None:
        with pytest.raises(TransportError):
            registry.spawn(UnifiedBridge("abc", server))


class TestPushChannelBridge:
    async def test_endpoint_event_then_replies(self, registry, server) -> None:
        bridge = registry.open(PushChannelBridge("abc123", server, "/messages"))

        with anyio.fail_after(5):
            async with anyio.create_task_group() as tg:
                tg.start_soon(bridge.serve)
                frames = bridge.frames()

                first = await frames.__anext__()
                assert first == {"event": "endpoint", "data": "/messages?sessionId=abc123"}

                await bridge.submit(request(1, "initialize", INIT_PARAMS))
                reply = await frames.__anext__()
                assert reply["event"] == "message"
                body = json.loads(reply["data"])
                assert body["id"] == 1
                assert body["result"]["serverInfo"]["name"] == SERVER_NAME

                registry.close("abc123")
                assert [frame async for frame in frames] == []

    async def test_submit_after_close_is_session_not_found(self, registry, server) -> None:
        bridge = registry.open(PushChannelBridge("abc", server, "/messages"))
        registry.close("abc")

        with pytest.raises(SessionNotFoundError):
            await bridge.submit(request(1, "ping"))


class TestUnifiedBridge:
    async def test_handshake_and_tools_list(self, registry, server) -> None:
        with anyio.fail_after(5):
            async with registry.run():
                bridge = registry.spawn(UnifiedBridge(new_session_id(), server))

                init = await bridge.exchange(request(1, "initialize", INIT_PARAMS))
                assert init.root.id == 1
                assert init.root.result["serverInfo"]["name"] == SERVER_NAME

                assert await bridge.exchange(notification("notifications/initialized")) is None

                listed = await bridge.exchange(request(2, "tools/list"))
                names = [tool["name"] for tool in listed.root.result["tools"]]
                assert "write_cards" in names

        assert len(registry) == 0

    async def test_concurrent_requests_get_their_own_replies(self, registry, server) -> None:
        replies = {}

        with anyio.fail_after(5):
            async with registry.run():
                bridge = registry.spawn(UnifiedBridge(new_session_id(), server))
                await bridge.exchange(request(1, "initialize", INIT_PARAMS))
                await bridge.exchange(notification("notifications/initialized"))

                async def call(request_id):
                    replies[request_id] = await bridge.exchange(request(request_id, "ping"))

                async with anyio.create_task_group() as tg:
                    for request_id in (10, 11, 12):
                        tg.start_soon(call, request_id)

        assert {request_id: reply.root.id for request_id, reply in replies.items()} == {
            10: 10,
            11: 11,
            12: 12,
        }

    async def test_reply_timeout_raises_transport_error(self, server) -> None:
        bridge = UnifiedBridge("idle", server)
        bridge.response_timeout = 0.05

        with pytest.raises(TransportError, match="Timed out"):
            await bridge.exchange(request(1, "initialize", INIT_PARAMS))

    async def test_failed_session_does_not_stop_registry(self, registry, server) -> None:
        class BrokenBridge(UnifiedBridge):
            async def serve(self) -> None:
                raise RuntimeError("reply router crashed")

        with anyio.fail_after(5):
            async with registry.run():
                registry.spawn(BrokenBridge("broken", server))
                healthy = registry.spawn(UnifiedBridge("healthy", server))
                await anyio.sleep(0.05)

                assert "broken" not in registry
                init = await healthy.exchange(request(1, "initialize", INIT_PARAMS))
                assert init.root.id == 1

        assert len(registry) == 0
