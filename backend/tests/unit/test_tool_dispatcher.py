"""Unit tests for the tool dispatcher and the card tool handlers."""

import json

import pytest

from backend.src.models.card import EmptyInput
from backend.src.services.card_store import CardStore
from backend.src.services.errors import ToolNotFoundError, ValidationError
from backend.src.services.tool_dispatcher import ToolDefinition, ToolDispatcher, ToolOutcome
from backend.src.services.tools import build_dispatcher
from backend.tests.fakes import FakeSupabase, make_card, store_error

CARD_ID = "3f2b8c1a-9d4e-4f6a-8b7c-1e2d3c4b5a69"
EXPECTED_TOOLS = [
    "health",
    "write_cards",
    "lookup_card_by_id",
    "lookup_categories",
    "lookup_projects",
    "lookup_tags",
    "search_cards",
]


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def dispatcher(supabase) -> ToolDispatcher:
    return build_dispatcher(CardStore(supabase))


class TestToolRegistry:
    def test_registers_every_card_tool(self, dispatcher) -> None:
        assert dispatcher.names() == EXPECTED_TOOLS

    def test_list_tools_exposes_input_schemas(self, dispatcher) -> None:
        tools = {tool.name: tool for tool in dispatcher.list_tools()}

        write_schema = tools["write_cards"].inputSchema
        assert write_schema["type"] == "object"
        assert write_schema["properties"]["cards"]["type"] == "array"
        assert tools["health"].inputSchema["type"] == "object"

    def test_duplicate_registration_is_rejected(self) -> None:
        async def handler(_):
            return ToolOutcome({})

        definition = ToolDefinition("ping", "ping", EmptyInput, handler)
        dispatcher = ToolDispatcher([definition])

        with pytest.raises(ValueError):
            dispatcher.register(definition)

    def test_unknown_tool(self, dispatcher) -> None:
        with pytest.raises(ToolNotFoundError) as excinfo:
            dispatcher.get("drop_tables")

        assert excinfo.value.status_code == 404


class TestDispatch:
    async def test_validation_runs_before_handler(self, dispatcher, supabase) -> None:
        with pytest.raises(ValidationError) as excinfo:
            await dispatcher.dispatch("write_cards", {"cards": [make_card(signal=9)]})

        assert excinfo.value.detail["tool"] == "write_cards"
        assert excinfo.value.detail["errors"]
        assert supabase.db.calls == []

    async def test_outcome_converts_to_call_tool_result(self, dispatcher) -> None:
        outcome = await dispatcher.dispatch("lookup_categories", {})
        result = outcome.to_call_tool_result()

        assert result.isError is False
        assert json.loads(result.content[0].text) == {"categories": []}


class TestCardTools:
    async def test_health_ok(self, dispatcher, supabase) -> None:
        first = await dispatcher.dispatch("health", {})
        second = await dispatcher.dispatch("health", {})

        for outcome in (first, second):
            assert outcome.is_error is False
            assert outcome.payload["status"] == "ok"
            assert outcome.payload["supabase"] == {"connected": True}
        assert all(call[1] == "select" for call in supabase.db.calls)

    async def test_health_degraded_on_store_rejection(self, dispatcher, supabase) -> None:
        supabase.db.fail("cards", "select", store_error("relation does not exist"))

        outcome = await dispatcher.dispatch("health", {})

        assert outcome.payload["status"] == "degraded"
        assert outcome.payload["supabase"]["error"] == "relation does not exist"

    async def test_health_error_on_transport_failure(self, dispatcher, supabase) -> None:
        supabase.db.fail_everything = ConnectionError("connection refused")

        outcome = await dispatcher.dispatch("health", {})

        assert outcome.payload["status"] == "error"
        assert outcome.payload["supabase"]["connected"] is False

    async def test_write_then_lookup(self, dispatcher) -> None:
        written = await dispatcher.dispatch("write_cards", {"cards": [make_card(objectID=CARD_ID)]})
        found = await dispatcher.dispatch(
            "lookup_card_by_id", {"ids": [CARD_ID, "22222222-2222-4222-8222-222222222222"]}
        )

        assert written.payload["written"] == 1
        assert [card["objectID"] for card in found.payload["cards"]] == [CARD_ID]

    async def test_write_cards_flags_catastrophic_failure(self, dispatcher, supabase) -> None:
        supabase.db.fail_everything = RuntimeError("store unreachable")

        outcome = await dispatcher.dispatch("write_cards", {"cards": [make_card()]})

        assert outcome.is_error is True
        assert outcome.payload["written"] == 0
        assert outcome.payload["errors"] == 1

    async def test_lookup_views(self, dispatcher) -> None:
        await dispatcher.dispatch("write_cards", {"cards": [make_card()]})

        categories = await dispatcher.dispatch("lookup_categories", {})
        projects = await dispatcher.dispatch("lookup_projects", {})
        tags = await dispatcher.dispatch("lookup_tags", {})

        assert categories.payload == {"categories": ["concept"]}
        assert projects.payload == {"projects": ["notes"]}
        assert tags.payload == {"tags": {"lvl0": ["Engineering"], "lvl1": ["asyncio"]}}

    async def test_search_cards_returns_list(self, dispatcher) -> None:
        await dispatcher.dispatch("write_cards", {"cards": [make_card()]})

        outcome = await dispatcher.dispatch("search_cards", {"category": "concept"})

        assert isinstance(outcome.payload, list)
        assert outcome.payload[0]["title"] == "Event loop basics"

    async def test_store_rejection_becomes_error_outcome(self, dispatcher, supabase) -> None:
        supabase.db.fail("unique_categories", "select", store_error("view missing"))

        outcome = await dispatcher.dispatch("lookup_categories", {})

        assert outcome.is_error is True
        assert outcome.payload == {"error": "view missing"}

    async def test_transport_failure_becomes_error_outcome(self, dispatcher, supabase) -> None:
        supabase.db.fail_everything = ConnectionError("connection reset")

        outcome = await dispatcher.dispatch("search_cards", {"category": "concept"})

        assert outcome.is_error is True
        assert outcome.payload == {"error": "connection reset"}
