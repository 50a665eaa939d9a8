"""Named, schema-validated operations shared by the agent and REST surfaces."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

from mcp.types import CallToolResult, TextContent, Tool
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import ToolNotFoundError, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ToolOutcome:
    """Content envelope for a tool run: payload plus an explicit error flag."""

    payload: Any
    is_error: bool = False

    @classmethod
    def failure(cls, message: str, **extra: Any) -> "ToolOutcome":
        return cls(payload={"error": message, **extra}, is_error=True)

    def to_call_tool_result(self) -> CallToolResult:
        return CallToolResult(
            content=[TextContent(type="text", text=json.dumps(self.payload, default=str))],
            isError=self.is_error,
        )


ToolHandler = Callable[[BaseModel], Awaitable[ToolOutcome]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: ToolHandler

    def input_schema(self) -> Dict[str, Any]:
        return self.input_model.model_json_schema()


def validation_details(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    """JSON-safe field-level errors."""
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg"),
            "type": error.get("type"),
        }
        for error in exc.errors()
    ]


class ToolDispatcher:
    """Fixed registry of tools; validation happens before any handler runs."""

    def __init__(self, tools: Iterable[ToolDefinition] = ()):
        self._tools: Dict[str, ToolDefinition] = {}
        for definition in tools:
            self.register(definition)

    def register(self, definition: ToolDefinition) -> None:
        if definition.name in self._tools:
            raise ValueError(f"Tool already registered: {definition.name}")
        self._tools[definition.name] = definition

    def names(self) -> List[str]:
        return list(self._tools)

    def get(self, name: str) -> ToolDefinition:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def list_tools(self) -> List[Tool]:
        return [
            Tool(
                name=definition.name,
                description=definition.description,
                inputSchema=definition.input_schema(),
            )
            for definition in self._tools.values()
        ]

    def validate(self, name: str, arguments: Optional[Dict[str, Any]]) -> BaseModel:
        definition = self.get(name)
        try:
            return definition.input_model.model_validate(arguments or {})
        except PydanticValidationError as exc:
            raise ValidationError(
                "Validation failed",
                detail={"tool": name, "errors": validation_details(exc)},
            ) from exc

    async def dispatch(self, name: str, arguments: Optional[Dict[str, Any]]) -> ToolOutcome:
        """Validate raw arguments and run the tool."""
        model = self.validate(name, arguments)
        return await self.invoke(name, model)

    async def invoke(self, name: str, model: BaseModel) -> ToolOutcome:
        """Run a tool whose input has already been validated."""
        definition = self.get(name)
        start_time = time.time()
        try:
            outcome = await definition.handler(model)
        except Exception as exc:  # noqa: BLE001 - reported as an error outcome
            logger.exception("Tool execution failed", extra={"tool_name": name})
            outcome = ToolOutcome.failure(str(exc) or type(exc).__name__)
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Tool called",
            extra={
                "tool_name": name,
                "is_error": outcome.is_error,
                "duration_ms": f"{duration_ms:.2f}",
            },
        )
        return outcome


__all__ = [
    "ToolDispatcher",
    "ToolDefinition",
    "ToolOutcome",
    "ToolHandler",
    "validation_details",
]
