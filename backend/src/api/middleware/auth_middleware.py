"""Authentication dependency helpers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Header, Request

from ...models.auth import Principal
from ...services.errors import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)$", re.IGNORECASE)

# Agent transport entry points; clients there parse the 401 challenge themselves.
PROTOCOL_PATHS = ("/sse", "/messages", "/mcp")


def is_protocol_path(path: str) -> bool:
    return any(path == prefix or path.startswith(prefix + "/") for prefix in PROTOCOL_PATHS)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, else None."""
    if not authorization:
        return None
    match = BEARER_PATTERN.match(authorization.strip())
    return match.group(1) if match else None


@dataclass
class AuthContext:
    """Context extracted from a bearer token."""

    principal: Principal

    @property
    def user_id(self) -> str:
        return self.principal.subject


async def get_auth_context(
    request: Request,
    authorization: Annotated[Optional[str], Header(alias="Authorization")] = None,
) -> AuthContext:
    """
    Verify the bearer credential and attach the principal to the request.

    Raises AuthenticationError if the header is missing, malformed or rejected.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError(
            "Authorization header required",
            error="unauthorized",
            detail={"credential": "missing"},
        )

    verifier = request.app.state.verifier
    principal = await verifier.verify(token)
    request.state.principal = principal
    logger.debug(
        "Request authenticated",
        extra={"principal_id": principal.subject, "path": request.url.path},
    )
    return AuthContext(principal=principal)


__all__ = [
    "AuthContext",
    "get_auth_context",
    "extract_bearer_token",
    "is_protocol_path",
    "PROTOCOL_PATHS",
]
