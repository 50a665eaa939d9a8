"""FastAPI exception handlers aligned with HTTP API contract."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...services.errors import AuthenticationError, ServiceError, SessionNotFoundError
from ..views import render_unauthorized_page
from .auth_middleware import is_protocol_path

logger = logging.getLogger(__name__)

DEFAULT_ERRORS: Dict[int, Tuple[str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("validation_error", "Validation failed"),
    status.HTTP_401_UNAUTHORIZED: ("unauthorized", "Authorization required"),
    status.HTTP_403_FORBIDDEN: ("forbidden", "Forbidden"),
    status.HTTP_404_NOT_FOUND: ("not_found", "Resource not found"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("method_not_allowed", "Method not allowed"),
    status.HTTP_500_INTERNAL_SERVER_ERROR: ("internal_error", "Internal server error"),
}


def _normalize_error(
    status_code: int, detail: Any
) -> Tuple[str, str, Optional[Dict[str, Any]]]:
    default_error, default_message = DEFAULT_ERRORS.get(
        status_code, DEFAULT_ERRORS[status.HTTP_500_INTERNAL_SERVER_ERROR]
    )
    if isinstance(detail, dict):
        error = detail.get("error", default_error)
        message = detail.get("message", default_message)
        detail_payload = detail.get("detail")
        if detail_payload is None:
            remainder = {
                k: v for k, v in detail.items() if k not in {"error", "message", "detail"}
            }
            detail_payload = remainder or None
        return error, message, detail_payload
    if isinstance(detail, str) and detail:
        return default_error, detail, None
    return default_error, default_message, None


def _response(
    status_code: int, detail: Any, headers: Optional[Dict[str, str]] = None
) -> JSONResponse:
    error, message, extra = _normalize_error(status_code, detail)
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "detail": extra},
        headers=headers,
    )


def _clean_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop non-serializable context (e.g. exception objects) from pydantic errors."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in errors
    ]


def resource_metadata_url(request: Request) -> str:
    config = request.app.state.config
    path = request.url.path
    suffix = path if is_protocol_path(path) else ""
    return f"{config.public_url}/.well-known/oauth-protected-resource{suffix}"


def build_challenge(request: Request, exc: AuthenticationError) -> str:
    parts = [f'resource_metadata="{resource_metadata_url(request)}"']
    if exc.error == "invalid_token":
        description = exc.message.replace('"', "'")
        parts.insert(0, f'error="invalid_token", error_description="{description}"')
    return "Bearer " + ", ".join(parts)


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


async def authentication_exception_handler(
    request: Request, exc: AuthenticationError
) -> Response:
    headers = {"WWW-Authenticate": build_challenge(request, exc)}
    if is_protocol_path(request.url.path):
        return PlainTextResponse(
            exc.message, status_code=status.HTTP_401_UNAUTHORIZED, headers=headers
        )
    if _wants_html(request):
        return HTMLResponse(
            render_unauthorized_page(resource_metadata_url(request)),
            status_code=status.HTTP_401_UNAUTHORIZED,
            headers=headers,
        )
    return _response(status.HTTP_401_UNAUTHORIZED, exc.to_dict(), headers=headers)


async def service_exception_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, SessionNotFoundError):
        logger.warning("Session not found", extra={"session_id": exc.session_id})
    elif exc.status_code >= 500:
        logger.error(
            "Request failed",
            extra={"path": request.url.path, "error": exc.error, "reason": exc.message},
        )
    return _response(exc.status_code, exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    detail = {"detail": {"errors": _clean_errors(exc.errors())}}
    return _response(status.HTTP_400_BAD_REQUEST, detail)


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _response(exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def internal_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return _response(status.HTTP_500_INTERNAL_SERVER_ERROR, None)


def register_error_handlers(app: FastAPI) -> None:
    """Attach shared exception handlers to the FastAPI application."""
    app.add_exception_handler(AuthenticationError, authentication_exception_handler)
    app.add_exception_handler(ServiceError, service_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, internal_exception_handler)


__all__ = [
    "register_error_handlers",
    "authentication_exception_handler",
    "service_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "internal_exception_handler",
    "build_challenge",
    "resource_metadata_url",
]
