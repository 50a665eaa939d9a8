"""Supabase client construction."""

from __future__ import annotations

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from .config import AppConfig


async def create_supabase_client(config: AppConfig) -> AsyncClient:
    """Build a service-role client; sessions are never persisted or refreshed."""
    return await acreate_client(
        config.supabase_url,
        config.supabase_service_role_key,
        options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
    )


__all__ = ["create_supabase_client"]
