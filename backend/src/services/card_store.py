"""Row access for cards, revisions and generation runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from ..models.card import CardRow, SearchCardsInput
from .errors import UpstreamStoreError

logger = logging.getLogger(__name__)

CARDS_TABLE = "cards"
REVISIONS_TABLE = "card_revisions"
RUNS_TABLE = "generation_runs"


def _store_error(exc: APIError) -> UpstreamStoreError:
    message = getattr(exc, "message", None) or str(exc)
    return UpstreamStoreError(
        message,
        detail={"code": getattr(exc, "code", None), "hint": getattr(exc, "hint", None)},
    )


class CardStore:
    """Thin wrapper over the Supabase PostgREST query builder.

    Store rejections surface as ``UpstreamStoreError``; transport failures
    (DNS, connection resets, timeouts) propagate unchanged.
    """

    def __init__(self, client: Any):
        self.client = client

    async def _execute(self, query: Any) -> Any:
        try:
            return await query.execute()
        except APIError as exc:
            raise _store_error(exc) from exc

    async def ping(self) -> Optional[int]:
        """Head-only count of the cards table."""
        response = await self._execute(
            self.client.table(CARDS_TABLE).select("objectID", count="exact", head=True)
        )
        return getattr(response, "count", None)

    async def card_exists(self, object_id: str) -> bool:
        response = await self._execute(
            self.client.table(CARDS_TABLE)
            .select("objectID")
            .eq("objectID", object_id)
            .limit(1)
        )
        return bool(response.data)

    async def upsert_card(self, row: CardRow) -> None:
        await self._execute(
            self.client.table(CARDS_TABLE).upsert(row.to_record(), on_conflict="objectID")
        )

    async def insert_revision(self, row: CardRow, run_id: str) -> None:
        await self._execute(
            self.client.table(REVISIONS_TABLE).insert(
                {
                    "card_id": row.object_id,
                    "revision_data": row.to_record(),
                    "generation_run_id": run_id,
                }
            )
        )

    async def insert_run(self, record: Dict[str, Any]) -> None:
        await self._execute(self.client.table(RUNS_TABLE).insert(record))

    async def update_run(self, run_id: str, fields: Dict[str, Any]) -> None:
        await self._execute(self.client.table(RUNS_TABLE).update(fields).eq("id", run_id))

    async def lookup_cards(self, ids: List[str]) -> List[Dict[str, Any]]:
        response = await self._execute(
            self.client.table(CARDS_TABLE).select("*").in_("objectID", ids)
        )
        return list(response.data or [])

    async def list_categories(self) -> List[str]:
        response = await self._execute(self.client.table("unique_categories").select("category"))
        return [row["category"] for row in response.data or []]

    async def list_projects(self) -> List[str]:
        response = await self._execute(self.client.table("unique_projects").select("project"))
        return [row["project"] for row in response.data or []]

    async def list_tags(self) -> Dict[str, List[str]]:
        lvl0, lvl1 = await asyncio.gather(
            self._execute(self.client.table("unique_tags_lvl0").select("tag")),
            self._execute(self.client.table("unique_tags_lvl1").select("tag")),
        )
        return {
            "lvl0": [row["tag"] for row in lvl0.data or []],
            "lvl1": [row["tag"] for row in lvl1.data or []],
        }

    async def search_cards(self, filters: SearchCardsInput) -> List[Dict[str, Any]]:
        query = self.client.table(CARDS_TABLE).select("*")
        if filters.title:
            query = query.ilike("title", f"%{filters.title}%")
        if filters.category:
            query = query.eq("category", filters.category)
        if filters.project:
            query = query.contains("projects", [filters.project])
        if filters.lvl0:
            query = query.contains("tags", {"lvl0": filters.lvl0})
        if filters.lvl1:
            query = query.contains("tags", {"lvl1": filters.lvl1})

        logger.info("Searching cards", extra={"filters": filters.model_dump(exclude_none=True)})
        response = await self._execute(query)
        return list(response.data or [])


__all__ = ["CardStore", "CARDS_TABLE", "REVISIONS_TABLE", "RUNS_TABLE"]
