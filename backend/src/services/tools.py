"""Tool handlers wrapping the card store and writer."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..models.card import (
    CardIdInput,
    EmptyInput,
    SearchCardsInput,
    WriteCardsInput,
)
from .card_store import CardStore
from .card_writer import CardWriter
from .errors import UpstreamStoreError
from .tool_dispatcher import ToolDispatcher, ToolOutcome, ToolDefinition

logger = logging.getLogger(__name__)


class CardTools:
    """Handlers for every registered tool."""

    def __init__(self, store: CardStore, writer: CardWriter | None = None):
        self.store = store
        self.writer = writer or CardWriter(store)

    async def health(self, _: EmptyInput) -> ToolOutcome:
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            await self.store.ping()
        except UpstreamStoreError as exc:
            return ToolOutcome(
                {
                    "status": "degraded",
                    "timestamp": timestamp,
                    "supabase": {"connected": False, "error": exc.message},
                }
            )
        except Exception as exc:  # noqa: BLE001 - health never raises
            return ToolOutcome(
                {
                    "status": "error",
                    "timestamp": timestamp,
                    "supabase": {"connected": False, "error": str(exc) or type(exc).__name__},
                }
            )
        return ToolOutcome(
            {"status": "ok", "timestamp": timestamp, "supabase": {"connected": True}}
        )

    async def write_cards(self, params: WriteCardsInput) -> ToolOutcome:
        report = await self.writer.write_cards(params.cards)
        return ToolOutcome(report.to_payload(), is_error=report.is_error)

    async def lookup_card_by_id(self, params: CardIdInput) -> ToolOutcome:
        logger.info("Looking up cards by ID list", extra={"ids": params.ids})
        try:
            cards = await self.store.lookup_cards(params.ids)
        except UpstreamStoreError as exc:
            logger.error("Error looking up cards by ID list", extra={"error": exc.message})
            return ToolOutcome.failure(exc.message)
        return ToolOutcome({"cards": cards})

    async def lookup_categories(self, _: EmptyInput) -> ToolOutcome:
        try:
            categories = await self.store.list_categories()
        except UpstreamStoreError as exc:
            logger.error("Error fetching unique categories", extra={"error": exc.message})
            return ToolOutcome.failure(exc.message)
        return ToolOutcome({"categories": categories})

    async def lookup_projects(self, _: EmptyInput) -> ToolOutcome:
        try:
            projects = await self.store.list_projects()
        except UpstreamStoreError as exc:
            logger.error("Error fetching unique projects", extra={"error": exc.message})
            return ToolOutcome.failure(exc.message)
        return ToolOutcome({"projects": projects})

    async def lookup_tags(self, _: EmptyInput) -> ToolOutcome:
        try:
            tags = await self.store.list_tags()
        except UpstreamStoreError as exc:
            logger.error("Error fetching unique tags", extra={"error": exc.message})
            return ToolOutcome.failure(exc.message)
        return ToolOutcome({"tags": tags})

    async def search_cards(self, params: SearchCardsInput) -> ToolOutcome:
        try:
            cards = await self.store.search_cards(params)
        except UpstreamStoreError as exc:
            logger.error("Error searching cards", extra={"error": exc.message})
            return ToolOutcome.failure(exc.message)
        return ToolOutcome(cards)


def build_dispatcher(store: CardStore) -> ToolDispatcher:
    """Register the card tools in a fresh dispatcher."""
    tools = CardTools(store)
    return ToolDispatcher(
        [
            ToolDefinition(
                "health",
                "Check server and Supabase connectivity status",
                EmptyInput,
                tools.health,
            ),
            ToolDefinition(
                "write_cards",
                "Validate and upsert index cards to Supabase with revision history",
                WriteCardsInput,
                tools.write_cards,
            ),
            ToolDefinition(
                "lookup_card_by_id",
                "Lookup cards by UUID. Unknown ids are omitted from the result.",
                CardIdInput,
                tools.lookup_card_by_id,
            ),
            ToolDefinition(
                "lookup_categories",
                "List all unique card categories",
                EmptyInput,
                tools.lookup_categories,
            ),
            ToolDefinition(
                "lookup_projects",
                "List all unique card project identifiers",
                EmptyInput,
                tools.lookup_projects,
            ),
            ToolDefinition(
                "lookup_tags",
                "List all unique lvl0 and lvl1 tags",
                EmptyInput,
                tools.lookup_tags,
            ),
            ToolDefinition(
                "search_cards",
                "Search cards by title, category, project, and tags",
                SearchCardsInput,
                tools.search_cards,
            ),
        ]
    )


__all__ = ["CardTools", "build_dispatcher"]
