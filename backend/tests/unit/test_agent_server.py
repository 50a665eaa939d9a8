import json

import pytest
from mcp.shared.memory import create_connected_server_and_client_session

from backend.src.mcp.server import SERVER_NAME, build_agent_server
from backend.src.services.card_store import CardStore
from backend.src.services.tools import build_dispatcher
from backend.tests.fakes import FakeSupabase, make_card


@pytest.fixture
def server():
    return build_agent_server(build_dispatcher(CardStore(FakeSupabase())))


async def test_server_lists_card_tools(server) -> None:
    async with create_connected_server_and_client_session(server) as client:
        result = await client.list_tools()

    names = {tool.name for tool in result.tools}
    assert {"health", "write_cards", "search_cards"} <= names


async def test_server_identifies_itself(server) -> None:
    options = server.create_initialization_options()

    assert options.server_name == SERVER_NAME
    assert options.server_version == "1.0.0"


async def test_call_tool_returns_json_text(server) -> None:
    async with create_connected_server_and_client_session(server) as client:
        result = await client.call_tool("write_cards", {"cards": [make_card()]})

    assert result.isError is False
    payload = json.loads(result.content[0].text)
    assert payload["written"] == 1
    assert payload["results"][0]["status"] == "created"


async def test_invalid_arguments_are_error_results(server) -> None:
    async with create_connected_server_and_client_session(server) as client:
        result = await client.call_tool("write_cards", {"cards": []})

    assert result.isError is True
    payload = json.loads(result.content[0].text)
    assert payload["error"] == "Validation failed"
    assert payload["details"]


async def test_unknown_tool_is_error_result(server) -> None:
    async with create_connected_server_and_client_session(server) as client:
        result = await client.call_tool("drop_tables", {})

    assert result.isError is True
    assert "drop_tables" in json.loads(result.content[0].text)["error"]


async def test_store_transport_failure_is_error_result() -> None:
    supabase = FakeSupabase()
    supabase.db.fail_everything = ConnectionError("connection refused")
    server = build_agent_server(build_dispatcher(CardStore(supabase)))

    async with create_connected_server_and_client_session(server) as client:
        result = await client.call_tool("lookup_categories", {})

    assert result.isError is True
    assert json.loads(result.content[0].text) == {"error": "connection refused"}
