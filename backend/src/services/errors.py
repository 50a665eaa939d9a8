"""Domain exceptions shared by the HTTP and agent protocol surfaces."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status


class ServiceError(Exception):
    """Base error carrying an HTTP status and a machine-readable code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        error: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error is not None:
            self.error = error
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message, "detail": self.detail or None}


class ValidationError(ServiceError):
    """Input failed schema validation; never retried."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"


class AuthenticationError(ServiceError):
    """Missing, malformed, rejected or expired bearer credential."""

    status_code = status.HTTP_401_UNAUTHORIZED
    error = "invalid_token"


class SessionNotFoundError(ServiceError):
    """Stale or unknown agent protocol session."""

    status_code = status.HTTP_404_NOT_FOUND
    error = "session_not_found"

    def __init__(self, session_id: Optional[str]) -> None:
        super().__init__("Session not found", detail={"session_id": session_id})
        self.session_id = session_id


class ToolNotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "tool_not_found"

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}", detail={"tool": name})
        self.name = name


class UpstreamStoreError(ServiceError):
    """The external row store rejected a query."""

    error = "upstream_store_error"


class TransportError(ServiceError):
    """The session transport could not be constructed or written to."""

    error = "transport_error"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "SessionNotFoundError",
    "ToolNotFoundError",
    "UpstreamStoreError",
    "TransportError",
]
