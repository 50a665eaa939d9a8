"""Agent protocol over the push channel (GET /sse + POST /messages).

The event stream never ends on its own, so the GET is driven straight through
the ASGI interface while follow-up messages go through httpx in the same loop.
"""

import json
from typing import Any, Dict, List

import anyio
import httpx
import pytest
from mcp import types

from backend.src.services.card_store import CardStore
from backend.tests.fakes import VALID_TOKEN, make_card

AUTH = {"Authorization": f"Bearer {VALID_TOKEN}"}


class PushChannelClient:
    """Minimal ASGI client that parses ``text/event-stream`` frames."""

    def __init__(self, app) -> None:
        self.app = app
        self.status: int = 0
        self.headers: Dict[str, str] = {}
        self.disconnected = anyio.Event()
        self._buffer = ""
        self._send_events, self._events = anyio.create_memory_object_stream(100)

    def scope(self) -> Dict[str, Any]:
        return {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": "/sse",
            "raw_path": b"/sse",
            "root_path": "",
            "query_string": b"",
            "headers": [
                (b"host", b"testserver"),
                (b"accept", b"text/event-stream"),
                (b"authorization", AUTH["Authorization"].encode()),
            ],
            "client": ("127.0.0.1", 50000),
            "server": ("testserver", 80),
        }

    async def receive(self) -> Dict[str, Any]:
        await self.disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(self, message: Dict[str, Any]) -> None:
        if message["type"] == "http.response.start":
            self.status = message["status"]
            self.headers = {k.decode(): v.decode() for k, v in message.get("headers", [])}
            return
        if message["type"] != "http.response.body":
            return
        self._buffer += message.get("body", b"").decode()
        while "\n\n" in self._buffer:
            raw, self._buffer = self._buffer.split("\n\n", 1)
            event = self._parse(raw)
            if event is not None:
                await self._send_events.send(event)

    @staticmethod
    def _parse(raw: str):
        event: Dict[str, str] = {}
        data: List[str] = []
        for line in raw.splitlines():
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "data":
                data.append(value)
            else:
                event[field] = value
        if not data and not event:
            return None
        event["data"] = "\n".join(data)
        return event

    async def next_event(self) -> Dict[str, str]:
        with anyio.fail_after(5):
            return await self._events.receive()

    async def run(self) -> None:
        await self.app(self.scope(), self.receive, self.send)


def rpc(request_id, method, params=None) -> Dict[str, Any]:
    message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return message


INIT_PARAMS = {
    "protocolVersion": types.LATEST_PROTOCOL_VERSION,
    "capabilities": {},
    "clientInfo": {"name": "pytest", "version": "0.0.1"},
}


@pytest.fixture
async def http(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def test_full_session_over_push_channel(app, http, fake_supabase) -> None:
    channel = PushChannelClient(app)

    async with anyio.create_task_group() as tg:
        tg.start_soon(channel.run)

        endpoint = await channel.next_event()
        assert channel.status == 200
        assert channel.headers["content-type"].startswith("text/event-stream")
        assert endpoint["event"] == "endpoint"
        assert endpoint["data"].startswith("/messages?sessionId=")
        session_id = endpoint["data"].split("=", 1)[1]
        assert session_id in app.state.registry

        accepted = await http.post(
            endpoint["data"], json=rpc(1, "initialize", INIT_PARAMS), headers=AUTH
        )
        assert accepted.status_code == 202
        init = json.loads((await channel.next_event())["data"])
        assert init["id"] == 1
        assert init["result"]["serverInfo"]["name"] == "supascribe-notes-mcp"

        await http.post(
            endpoint["data"],
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
            headers=AUTH,
        )

        await http.post(endpoint["data"], json=rpc(2, "tools/list"), headers=AUTH)
        listed = json.loads((await channel.next_event())["data"])
        write_tool = next(t for t in listed["result"]["tools"] if t["name"] == "write_cards")
        assert write_tool["inputSchema"]["properties"]["cards"]["type"] == "array"

        await http.post(
            endpoint["data"],
            json=rpc(
                3, "tools/call", {"name": "write_cards", "arguments": {"cards": [make_card()]}}
            ),
            headers=AUTH,
        )
        called = json.loads((await channel.next_event())["data"])
        assert called["id"] == 3
        assert called["result"]["isError"] is False
        assert json.loads(called["result"]["content"][0]["text"])["written"] == 1

        channel.disconnected.set()

    assert session_id not in app.state.registry
    assert len(fake_supabase.db.tables["cards"]) == 1


async def test_sessions_are_isolated(app, http) -> None:
    first, second = PushChannelClient(app), PushChannelClient(app)

    async with anyio.create_task_group() as tg:
        tg.start_soon(first.run)
        tg.start_soon(second.run)
        first_url = (await first.next_event())["data"]
        second_url = (await second.next_event())["data"]
        assert first_url != second_url

        await http.post(first_url, json=rpc("a", "initialize", INIT_PARAMS), headers=AUTH)
        await http.post(second_url, json=rpc("b", "initialize", INIT_PARAMS), headers=AUTH)

        assert json.loads((await first.next_event())["data"])["id"] == "a"
        assert json.loads((await second.next_event())["data"])["id"] == "b"

        first.disconnected.set()
        second.disconnected.set()

    assert len(app.state.registry) == 0


async def test_messages_requires_session_id(http) -> None:
    response = await http.post("/messages", json=rpc(1, "ping"), headers=AUTH)

    assert response.status_code == 400


async def test_messages_unknown_session(http) -> None:
    response = await http.post(
        "/messages?sessionId=stale", json=rpc(1, "ping"), headers=AUTH
    )

    assert response.status_code == 404
    assert response.json()["message"] == "Session not found"


async def test_messages_requires_credentials(http) -> None:
    response = await http.post("/messages?sessionId=stale", json=rpc(1, "ping"))

    assert response.status_code == 401
    assert "oauth-protected-resource/messages" in response.headers["www-authenticate"]


async def test_messages_after_disconnect_is_404(app, http) -> None:
    channel = PushChannelClient(app)

    async with anyio.create_task_group() as tg:
        tg.start_soon(channel.run)
        endpoint = (await channel.next_event())["data"]
        channel.disconnected.set()

    response = await http.post(endpoint, json=rpc(1, "ping"), headers=AUTH)

    assert response.status_code == 404
    assert response.json()["message"] == "Session not found"


async def test_disconnect_during_write_closes_session_at_once(
    app, http, fake_supabase, monkeypatch
) -> None:
    entered, release = anyio.Event(), anyio.Event()
    upsert_card = CardStore.upsert_card

    async def slow_upsert(self, row):
        entered.set()
        await release.wait()
        await upsert_card(self, row)

    monkeypatch.setattr(CardStore, "upsert_card", slow_upsert)
    channel = PushChannelClient(app)

    async with anyio.create_task_group() as tg:
        tg.start_soon(channel.run)
        endpoint = (await channel.next_event())["data"]
        session_id = endpoint.split("=", 1)[1]

        await http.post(endpoint, json=rpc(1, "initialize", INIT_PARAMS), headers=AUTH)
        await channel.next_event()
        await http.post(
            endpoint,
            json={"jsonrpc": "2.0", "method": "notifications/initialized"},
            headers=AUTH,
        )
        await http.post(
            endpoint,
            json=rpc(
                2, "tools/call", {"name": "write_cards", "arguments": {"cards": [make_card()]}}
            ),
            headers=AUTH,
        )
        with anyio.fail_after(5):
            await entered.wait()

        channel.disconnected.set()
        with anyio.fail_after(1):
            while session_id in app.state.registry:
                await anyio.sleep(0.01)

        response = await http.post(endpoint, json=rpc(3, "ping"), headers=AUTH)
        assert response.status_code == 404
        assert fake_supabase.db.runs()[0]["status"] == "partial"

        release.set()

    (run,) = fake_supabase.db.runs()
    assert run["status"] == "success"
    assert len(fake_supabase.db.tables["cards"]) == 1
