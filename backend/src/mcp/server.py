"""MCP server exposing the card tools over the agent wire protocol."""

from __future__ import annotations

import logging
from typing import List

from mcp import types
from mcp.server.lowlevel import Server

from ..services.errors import ToolNotFoundError, ValidationError
from ..services.tool_dispatcher import ToolDispatcher, ToolOutcome

logger = logging.getLogger(__name__)

SERVER_NAME = "supascribe-notes-mcp"
SERVER_VERSION = "1.0.0"
INSTRUCTIONS = (
    "Index card tools backed by Supabase. write_cards upserts 1-50 cards per call "
    "(objectID optional UUID; title, blurb, fact, category required; signal 1-5; "
    "tags.lvl0 broad categories, tags.lvl1 specific tags) and records a revision per "
    "card plus one generation run per call. Use lookup_* and search_cards to read."
)


def build_agent_server(dispatcher: ToolDispatcher) -> Server:
    """Create a low-level MCP server bound to ``dispatcher``."""
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION, instructions=INSTRUCTIONS)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return dispatcher.list_tools()

    async def call_tool(request: types.CallToolRequest) -> types.ServerResult:
        name = request.params.name
        arguments = request.params.arguments or {}
        try:
            outcome = await dispatcher.dispatch(name, arguments)
        except ValidationError as exc:
            logger.info(
                "Tool input rejected",
                extra={"tool_name": name, "errors": exc.detail.get("errors")},
            )
            outcome = ToolOutcome.failure(exc.message, details=exc.detail.get("errors"))
        except ToolNotFoundError as exc:
            logger.warning("Unknown tool requested", extra={"tool_name": name})
            outcome = ToolOutcome.failure(exc.message)
        return types.ServerResult(outcome.to_call_tool_result())

    # Registered directly so the handler controls the isError flag of every result.
    server.request_handlers[types.CallToolRequest] = call_tool
    return server


__all__ = ["build_agent_server", "SERVER_NAME", "SERVER_VERSION"]
