"""FastAPI middleware for authentication, logging and error handling."""

from .auth_middleware import (
    AuthContext,
    extract_bearer_token,
    get_auth_context,
    is_protocol_path,
)
from .error_handlers import (
    authentication_exception_handler,
    http_exception_handler,
    internal_exception_handler,
    register_error_handlers,
    service_exception_handler,
    validation_exception_handler,
)
from .request_logger import RequestLoggingMiddleware, redact_authorization

__all__ = [
    "AuthContext",
    "extract_bearer_token",
    "get_auth_context",
    "is_protocol_path",
    "register_error_handlers",
    "authentication_exception_handler",
    "service_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "internal_exception_handler",
    "RequestLoggingMiddleware",
    "redact_authorization",
]
