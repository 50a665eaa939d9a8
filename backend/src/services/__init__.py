"""Service layer for business logic and external integrations."""

from .auth import SupabaseTokenVerifier, TokenVerifier, extract_expiry
from .card_store import CardStore
from .card_writer import BatchState, CardWriter, RunStatus, WriteBatch
from .config import AppConfig, get_config, reload_config
from .errors import (
    AuthenticationError,
    ServiceError,
    SessionNotFoundError,
    ToolNotFoundError,
    TransportError,
    UpstreamStoreError,
    ValidationError,
)
from .tool_dispatcher import ToolDispatcher, ToolOutcome, ToolDefinition
from .tools import CardTools, build_dispatcher

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "TokenVerifier",
    "SupabaseTokenVerifier",
    "extract_expiry",
    "CardStore",
    "CardWriter",
    "WriteBatch",
    "BatchState",
    "RunStatus",
    "ToolDispatcher",
    "ToolOutcome",
    "ToolDefinition",
    "CardTools",
    "build_dispatcher",
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "SessionNotFoundError",
    "ToolNotFoundError",
    "UpstreamStoreError",
    "TransportError",
]
