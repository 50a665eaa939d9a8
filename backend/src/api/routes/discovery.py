"""OAuth discovery metadata pointing clients at the Supabase Auth server."""

from __future__ import annotations

from fastapi import APIRouter, Request

from ...models.auth import AuthorizationServerMetadata, ProtectedResourceMetadata
from ...services.config import AppConfig

router = APIRouter()


def protected_resource_metadata(config: AppConfig) -> ProtectedResourceMetadata:
    return ProtectedResourceMetadata(
        resource=config.supabase_url,
        authorization_servers=[config.auth_issuer],
        resource_documentation=config.public_url,
    )


def authorization_server_metadata(config: AppConfig) -> AuthorizationServerMetadata:
    issuer = config.auth_issuer
    return AuthorizationServerMetadata(
        issuer=issuer,
        authorization_endpoint=f"{issuer}/oauth/authorize",
        token_endpoint=f"{issuer}/oauth/token",
        registration_endpoint=f"{issuer}/oauth/clients/register",
        jwks_uri=f"{issuer}/.well-known/jwks.json",
    )


@router.get(
    "/.well-known/oauth-protected-resource",
    response_model=ProtectedResourceMetadata,
)
async def get_protected_resource_metadata(request: Request):
    return protected_resource_metadata(request.app.state.config)


@router.get(
    "/.well-known/oauth-protected-resource/{resource_path:path}",
    response_model=ProtectedResourceMetadata,
)
async def get_protected_resource_metadata_for_path(resource_path: str, request: Request):
    """Same document for every protected path (e.g. ``/sse``)."""
    return protected_resource_metadata(request.app.state.config)


@router.get(
    "/.well-known/oauth-authorization-server",
    response_model=AuthorizationServerMetadata,
)
async def get_authorization_server_metadata(request: Request):
    return authorization_server_metadata(request.app.state.config)


__all__ = ["router", "protected_resource_metadata", "authorization_server_metadata"]
