"""Liveness, help page and OpenAPI document."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request
from fastapi.openapi.utils import get_openapi
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from ...models.card import CardIdInput, CardInput, SearchCardsInput, WriteCardsInput
from ..views import render_help_page

router = APIRouter()

API_VERSION = "1.0.0"
COMPONENT_MODELS = (CardInput, WriteCardsInput, CardIdInput, SearchCardsInput)


def _liveness() -> Dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/status")
async def status_check():
    """Liveness probe."""
    return _liveness()


@router.get("/health")
async def health():
    """Liveness probe (alias of /status)."""
    return _liveness()


@router.get("/", include_in_schema=False)
async def root(request: Request) -> Response:
    """Help page for browsers; push-channel clients are sent to /sse."""
    if "text/event-stream" in request.headers.get("accept", ""):
        return RedirectResponse(url="/sse", status_code=307)
    return HTMLResponse(render_help_page())


def build_openapi_document(request: Request) -> Dict[str, Any]:
    app = request.app
    if app.openapi_schema:
        return app.openapi_schema

    config = app.state.config
    document = get_openapi(
        title="Supascribe Notes API",
        version=API_VERSION,
        description="REST facade over the index card tools.",
        routes=app.routes,
        servers=[{"url": config.public_url}],
    )
    components = document.setdefault("components", {})
    schemas = components.setdefault("schemas", {})
    for model in COMPONENT_MODELS:
        schema = model.model_json_schema(ref_template="#/components/schemas/{model}")
        for name, nested in schema.pop("$defs", {}).items():
            schemas.setdefault(name, nested)
        schemas.setdefault(model.__name__, schema)
    components.setdefault("securitySchemes", {})["BearerAuth"] = {
        "type": "http",
        "scheme": "bearer",
        "bearerFormat": "JWT",
    }
    document["security"] = [{"BearerAuth": []}]
    app.openapi_schema = document
    return document


@router.get("/openapi.json", include_in_schema=False)
async def openapi_document(request: Request) -> JSONResponse:
    return JSONResponse(
        build_openapi_document(request), headers={"Cache-Control": "no-store"}
    )


__all__ = ["router", "build_openapi_document", "API_VERSION"]
