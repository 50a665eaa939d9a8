"""Pydantic models for data validation and serialization."""

from .auth import AuthorizationServerMetadata, Principal, ProtectedResourceMetadata
from .card import (
    CardIdInput,
    CardInput,
    CardRow,
    CardTags,
    CardWriteResult,
    EmptyInput,
    SearchCardsInput,
    WriteCardsInput,
    WriteReport,
)

__all__ = [
    "Principal",
    "ProtectedResourceMetadata",
    "AuthorizationServerMetadata",
    "CardTags",
    "CardInput",
    "WriteCardsInput",
    "CardIdInput",
    "EmptyInput",
    "SearchCardsInput",
    "CardRow",
    "CardWriteResult",
    "WriteReport",
]
