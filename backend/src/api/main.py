"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..mcp.server import build_agent_server
from ..mcp.sessions import SessionRegistry
from ..services.auth import SupabaseTokenVerifier
from ..services.card_store import CardStore
from ..services.config import AppConfig, get_config
from ..services.supabase_client import create_supabase_client
from ..services.tools import build_dispatcher
from .middleware import RequestLoggingMiddleware, register_error_handlers
from .routes import agent, cards, discovery, system

logger = logging.getLogger(__name__)


def wire_services(app: FastAPI, client: Any) -> None:
    """Bind the store, tools, verifier and agent server to ``client``."""
    store = CardStore(client)
    dispatcher = build_dispatcher(store)
    app.state.supabase_client = client
    app.state.store = store
    app.state.dispatcher = dispatcher
    app.state.verifier = SupabaseTokenVerifier(client)
    app.state.agent_server = build_agent_server(dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the Supabase client (unless injected) and run the session registry."""
    if app.state.supabase_client is None:
        client = await create_supabase_client(app.state.config)
        wire_services(app, client)
        logger.info("Supabase client ready", extra={"supabase_url": app.state.config.supabase_url})

    async with app.state.registry.run():
        logger.info(
            "Server ready",
            extra={"public_url": app.state.config.public_url, "tools": app.state.dispatcher.names()},
        )
        yield
    logger.info("Server stopped")


def create_app(
    config: Optional[AppConfig] = None, *, supabase_client: Any = None
) -> FastAPI:
    config = config or get_config()

    app = FastAPI(
        title="Supascribe Notes API",
        description="Index cards over MCP and REST, stored in Supabase",
        version="1.0.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.registry = SessionRegistry()
    app.state.supabase_client = None
    if supabase_client is not None:
        wire_services(app, supabase_client)

    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["mcp-session-id", "WWW-Authenticate"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(system.router, tags=["system"])
    app.include_router(discovery.router, tags=["discovery"])
    app.include_router(cards.router, tags=["cards"])
    app.include_router(agent.router, tags=["agent"])
    return app


__all__ = ["create_app", "wire_services", "lifespan"]
