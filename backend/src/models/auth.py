"""Authentication models."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Principal(BaseModel):
    """Identity of the caller, rebuilt from the bearer token on every request."""

    model_config = ConfigDict(frozen=True)

    subject: str = Field(..., description="Identity provider user id")
    email: Optional[str] = Field(None, description="User email, when known")
    role: Optional[str] = Field(None, description="Provider role claim")
    expires_at: int = Field(..., description="Token expiry as a unix timestamp")
    token: str = Field(..., repr=False, exclude=True, description="Raw bearer token")


class ProtectedResourceMetadata(BaseModel):
    """OAuth 2.0 protected resource metadata (RFC 9728)."""

    resource: str
    authorization_servers: list[str]
    bearer_methods_supported: list[str] = Field(default_factory=lambda: ["header"])
    scopes_supported: list[str] = Field(default_factory=list)
    resource_documentation: Optional[str] = None


class AuthorizationServerMetadata(BaseModel):
    """OAuth 2.0 authorization server metadata (RFC 8414)."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str
    jwks_uri: str
    response_types_supported: list[str] = Field(default_factory=lambda: ["code"])
    grant_types_supported: list[str] = Field(
        default_factory=lambda: ["authorization_code", "refresh_token"]
    )
    code_challenge_methods_supported: list[str] = Field(default_factory=lambda: ["S256"])
    token_endpoint_auth_methods_supported: list[str] = Field(
        default_factory=lambda: ["client_secret_basic", "client_secret_post", "none"]
    )


__all__ = ["Principal", "ProtectedResourceMetadata", "AuthorizationServerMetadata"]
