"""Card-related Pydantic models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

MAX_BATCH_SIZE = 50

_url_adapter = TypeAdapter(AnyUrl)


def _blank_to_none(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    return value


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_timestamp(value: str | datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with millisecond precision and ``Z``.

    Offset-less inputs are read as UTC.
    """
    parsed = _parse_timestamp(value) if isinstance(value, str) else value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    utc = parsed.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return normalize_timestamp(datetime.now(timezone.utc))


def _check_uuid(value: str) -> str:
    try:
        uuid.UUID(value)
    except (ValueError, AttributeError, TypeError) as exc:
        raise ValueError("must be a valid UUID") from exc
    return value


class CardTags(BaseModel):
    """Hierarchical tags: lvl0 are broad categories, lvl1 are specific tags."""

    lvl0: Optional[List[str]] = Field(
        default=None,
        description='Broad, high-level categories or themes. E.g., "Engineering", "Design".',
    )
    lvl1: Optional[List[str]] = Field(
        default=None,
        description='Specific, granular tags or sub-themes. E.g., "React", "Q3 Goals".',
    )


class CardInput(BaseModel):
    """One index card as submitted by a client."""

    model_config = ConfigDict(populate_by_name=True, title="CardInput")

    object_id: Optional[str] = Field(
        default=None,
        alias="objectID",
        description="UUID of the card. If not provided, a new one will be generated.",
    )
    title: str = Field(..., min_length=1, description="Concise, descriptive title.")
    blurb: str = Field(
        ..., min_length=1, description='A short summary or "tweet-sized" description.'
    )
    fact: str = Field(
        ..., min_length=1, description="The main content of the card. Can include markdown."
    )
    url: Optional[str] = Field(
        default=None, description="Source URL associated with the card content."
    )
    tags: CardTags = Field(..., description="Hierarchical tags for the card.")
    projects: List[str] = Field(
        default_factory=list,
        description="List of project identifiers or names this card belongs to.",
    )
    category: str = Field(
        ..., min_length=1, description="The primary category or type of the note."
    )
    signal: int = Field(
        ...,
        ge=1,
        le=5,
        strict=True,
        description="Relevance score from 1 (low) to 5 (high).",
    )
    created_at: Optional[str] = Field(
        default=None,
        description=(
            "Optional historical creation timestamp. Normalized to ISO-8601 UTC before upsert."
        ),
    )

    @field_validator("object_id")
    @classmethod
    def _validate_object_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return _check_uuid(value)

    @field_validator("url", mode="before")
    @classmethod
    def _validate_url(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("url must be a valid URL")
        try:
            _url_adapter.validate_python(value)
        except ValueError as exc:
            raise ValueError("url must be a valid URL") from exc
        return value

    @field_validator("created_at", mode="before")
    @classmethod
    def _validate_created_at(cls, value: Any) -> Any:
        value = _blank_to_none(value)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("created_at must be a valid datetime string")
        try:
            _parse_timestamp(value)
        except ValueError as exc:
            raise ValueError("created_at must be a valid datetime string") from exc
        return value


class WriteCardsInput(BaseModel):
    model_config = ConfigDict(title="WriteCardsInput")

    cards: List[CardInput] = Field(
        ...,
        min_length=1,
        max_length=MAX_BATCH_SIZE,
        description="Array of cards to create or update.",
    )


class CardIdInput(BaseModel):
    model_config = ConfigDict(extra="forbid", title="CardIdInput")

    ids: List[str] = Field(
        ...,
        min_length=1,
        max_length=MAX_BATCH_SIZE,
        description="Array of card UUIDs to lookup.",
    )

    @field_validator("ids")
    @classmethod
    def _validate_ids(cls, values: List[str]) -> List[str]:
        return [_check_uuid(value) for value in values]


class EmptyInput(BaseModel):
    model_config = ConfigDict(title="EmptyInput")


class SearchCardsInput(BaseModel):
    """Search filters; at least one must be provided."""

    model_config = ConfigDict(title="SearchCardsInput")

    title: Optional[str] = Field(
        default=None, description="Match cards whose title contains this fragment."
    )
    category: Optional[str] = Field(default=None, description="Filter by category.")
    project: Optional[str] = Field(default=None, description="Filter by project identifier.")
    lvl0: Optional[List[str]] = Field(default=None, description="Filter by lvl0 tags.")
    lvl1: Optional[List[str]] = Field(default=None, description="Filter by lvl1 tags.")

    @field_validator("title", "category", "project")
    @classmethod
    def _strip_text(cls, value: Optional[str], info) -> Optional[str]:
        if value is None:
            return None
        trimmed = value.strip()
        if not trimmed:
            raise ValueError(f"{info.field_name} must not be empty")
        return trimmed

    @field_validator("lvl0", "lvl1")
    @classmethod
    def _strip_tags(cls, values: Optional[List[str]], info) -> Optional[List[str]]:
        if values is None:
            return None
        trimmed = [value.strip() for value in values]
        if any(not value for value in trimmed):
            raise ValueError(f"{info.field_name} tag must not be empty")
        return trimmed

    @model_validator(mode="after")
    def _require_filter(self) -> "SearchCardsInput":
        if not self.has_filter():
            raise ValueError("At least one search filter must be provided.")
        return self

    def has_filter(self) -> bool:
        return bool(
            self.title or self.category or self.project or self.lvl0 or self.lvl1
        )


@dataclass(frozen=True)
class CardRow:
    """Full replacement row for the ``cards`` table, built once per write."""

    object_id: str
    title: str
    blurb: str
    fact: str
    url: Optional[str]
    tags: Dict[str, List[str]]
    projects: List[str]
    category: str
    signal: int
    updated_at: str
    created_at: Optional[str] = None

    @classmethod
    def from_input(cls, card: CardInput, object_id: str, updated_at: str) -> "CardRow":
        created_at = normalize_timestamp(card.created_at) if card.created_at else None
        return cls(
            object_id=object_id,
            title=card.title,
            blurb=card.blurb,
            fact=card.fact,
            url=card.url,
            tags=card.tags.model_dump(exclude_none=True),
            projects=list(card.projects),
            category=card.category,
            signal=card.signal,
            updated_at=updated_at,
            created_at=created_at,
        )

    def to_record(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "objectID": self.object_id,
            "title": self.title,
            "blurb": self.blurb,
            "fact": self.fact,
            "url": self.url,
            "tags": self.tags,
            "projects": self.projects,
            "category": self.category,
            "signal": self.signal,
        }
        if self.created_at:
            record["created_at"] = self.created_at
        record["updated_at"] = self.updated_at
        return record


@dataclass
class CardWriteResult:
    object_id: str
    title: str
    status: str  # "created" | "updated"

    def to_dict(self) -> Dict[str, str]:
        return {"objectID": self.object_id, "title": self.title, "status": self.status}


@dataclass
class WriteReport:
    """Outcome of one ``write_cards`` batch."""

    run_id: str
    results: List[CardWriteResult] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    is_error: bool = False
    fatal_error: Optional[str] = None

    @property
    def written(self) -> int:
        return len(self.results)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "run_id": self.run_id,
            "written": self.written,
            "errors": len(self.errors),
            "results": [result.to_dict() for result in self.results],
        }
        if self.errors:
            payload["error_details"] = list(self.errors)
        if self.fatal_error:
            payload["error"] = self.fatal_error
        return payload


__all__ = [
    "MAX_BATCH_SIZE",
    "CardTags",
    "CardInput",
    "WriteCardsInput",
    "CardIdInput",
    "EmptyInput",
    "SearchCardsInput",
    "CardRow",
    "CardWriteResult",
    "WriteReport",
    "normalize_timestamp",
    "utc_now_iso",
]
