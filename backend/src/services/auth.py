"""Bearer token verification against the Supabase identity provider."""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, Optional

import jwt

from ..models.auth import Principal
from .errors import AuthenticationError

logger = logging.getLogger(__name__)

# Reported expiry when the token's own claims cannot be decoded.
FALLBACK_TTL_SECONDS = 3600


class TokenVerifier(abc.ABC):
    """Abstract base class for bearer token verification strategies."""

    @abc.abstractmethod
    async def verify(self, token: str) -> Principal:
        """
        Return the principal for ``token``.
        Raises AuthenticationError if the token is malformed or rejected.
        """


def extract_expiry(token: str, *, now: Optional[float] = None) -> int:
    """
    Best-effort read of the ``exp`` claim without verifying the signature.

    The identity provider has already validated signature and expiry; the
    local decode only reports ``expires_at`` to the caller.
    """
    current = int(now if now is not None else time.time())
    try:
        claims = jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
        )
    except jwt.PyJWTError as exc:
        logger.debug("Failed to decode token claims for exp", extra={"error": str(exc)})
        return current + FALLBACK_TTL_SECONDS

    exp = claims.get("exp")
    if isinstance(exp, (int, float)) and not isinstance(exp, bool):
        return int(exp)
    return current + FALLBACK_TTL_SECONDS


class SupabaseTokenVerifier(TokenVerifier):
    """Validates access tokens by asking Supabase Auth for the owning user."""

    def __init__(self, client: Any):
        self.client = client

    async def verify(self, token: str) -> Principal:
        if not token or not token.strip():
            raise AuthenticationError("Invalid access token: empty token")

        try:
            response = await self.client.auth.get_user(token)
        except Exception as exc:
            # Rejections and provider outages both end the request here.
            logger.warning(
                "Token verification failed",
                extra={"outcome": "rejected", "reason": type(exc).__name__},
            )
            raise AuthenticationError(f"Invalid access token: {exc}") from exc

        user = getattr(response, "user", None) if response is not None else None
        if user is None:
            logger.warning("Token verification failed", extra={"outcome": "no_user"})
            raise AuthenticationError("Invalid access token: No user found")

        logger.debug(
            "Token verified", extra={"outcome": "verified", "principal_id": user.id}
        )
        return Principal(
            subject=str(user.id),
            email=getattr(user, "email", None),
            role=getattr(user, "role", None),
            expires_at=extract_expiry(token),
            token=token,
        )


__all__ = [
    "TokenVerifier",
    "SupabaseTokenVerifier",
    "extract_expiry",
    "FALLBACK_TTL_SECONDS",
]
