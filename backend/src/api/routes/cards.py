"""REST facade over the card tools."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from ...models.card import CardIdInput, EmptyInput, SearchCardsInput, WriteCardsInput
from ...services.errors import ServiceError, ValidationError
from ...services.tool_dispatcher import ToolDispatcher, ToolOutcome, validation_details
from ..middleware import AuthContext, get_auth_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", dependencies=[Depends(get_auth_context)])


class CardLookupRequest(BaseModel):
    """Either a list of ids or a single ``id``."""

    model_config = ConfigDict(extra="forbid")

    ids: Optional[List[str]] = Field(default=None, description="Card UUIDs to lookup.")
    id: Optional[str] = Field(default=None, description="A single card UUID.")

    @model_validator(mode="after")
    def _one_of(self) -> "CardLookupRequest":
        if (self.ids is None) == (self.id is None):
            raise ValueError("Provide exactly one of 'ids' or 'id'.")
        return self

    def to_input(self) -> CardIdInput:
        ids = self.ids if self.ids is not None else [self.id]
        try:
            return CardIdInput(ids=ids)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Validation failed", detail={"errors": validation_details(exc)}
            ) from exc


def _dispatcher(request: Request) -> ToolDispatcher:
    return request.app.state.dispatcher


def _respond(outcome: ToolOutcome) -> Any:
    if outcome.is_error:
        return JSONResponse(status_code=500, content=outcome.payload)
    return outcome.payload


@router.post("/write-cards")
async def write_cards(
    body: WriteCardsInput,
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
):
    """Create or update a batch of cards."""
    logger.info(
        "REST write_cards",
        extra={"principal_id": auth.user_id, "card_count": len(body.cards)},
    )
    outcome = await _dispatcher(request).invoke("write_cards", body)
    return _respond(outcome)


@router.post("/lookup-card-by-id")
async def lookup_card_by_id(body: CardLookupRequest, request: Request):
    """Lookup cards by id; unknown ids are omitted."""
    outcome = await _dispatcher(request).invoke("lookup_card_by_id", body.to_input())
    if outcome.is_error or body.id is None:
        return _respond(outcome)

    cards = outcome.payload.get("cards", [])
    if not cards:
        raise ServiceError(
            "Card not found",
            error="not_found",
            status_code=404,
            detail={"id": body.id},
        )
    return cards[0]


@router.get("/lookup-categories")
async def lookup_categories(request: Request):
    return _respond(await _dispatcher(request).invoke("lookup_categories", EmptyInput()))


@router.get("/lookup-projects")
async def lookup_projects(request: Request):
    return _respond(await _dispatcher(request).invoke("lookup_projects", EmptyInput()))


@router.get("/lookup-tags")
async def lookup_tags(request: Request):
    return _respond(await _dispatcher(request).invoke("lookup_tags", EmptyInput()))


@router.post("/search-cards")
async def search_cards(body: SearchCardsInput, request: Request):
    """Search cards; at least one filter is required."""
    return _respond(await _dispatcher(request).invoke("search_cards", body))


__all__ = ["router", "CardLookupRequest"]
