"""Agent protocol endpoints: push channel (/sse + /messages) and unified (/mcp)."""

from __future__ import annotations

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import PlainTextResponse, Response
from mcp import types
from pydantic import ValidationError as PydanticValidationError

from ...mcp.sessions import SessionRegistry, new_session_id
from ...mcp.transport import (
    PushChannelBridge,
    PushChannelResponse,
    UnifiedBridge,
    encode_message,
)
from ...services.errors import SessionNotFoundError, TransportError, ValidationError
from ...services.tool_dispatcher import validation_details
from ..middleware import AuthContext, get_auth_context

logger = logging.getLogger(__name__)

router = APIRouter(include_in_schema=False)

MESSAGES_PATH = "/messages"
SESSION_HEADER = "mcp-session-id"


def _registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


async def _read_message(request: Request) -> types.JSONRPCMessage:
    body = await request.body()
    try:
        return types.JSONRPCMessage.model_validate_json(body)
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid JSON-RPC message", detail={"errors": validation_details(exc)}
        ) from exc


def _is_initialize(message: types.JSONRPCMessage) -> bool:
    root = message.root
    return isinstance(root, types.JSONRPCRequest) and root.method == "initialize"


@router.get("/sse")
async def open_push_channel(
    request: Request, auth: AuthContext = Depends(get_auth_context)
) -> Response:
    """Open a server-push channel; the first event names the message endpoint."""
    try:
        bridge = PushChannelBridge(
            new_session_id(), request.app.state.agent_server, MESSAGES_PATH
        )
    except Exception as exc:
        logger.exception("Failed to create push-channel transport")
        raise TransportError(f"Failed to create session transport: {exc}") from exc

    _registry(request).open(bridge)
    logger.info(
        "Push channel opened",
        extra={"session_id": bridge.session_id, "principal_id": auth.user_id},
    )
    return PushChannelResponse(bridge, _registry(request))


@router.post("/messages")
async def submit_message(
    request: Request,
    session_id: Annotated[Optional[str], Query(alias="sessionId")] = None,
    auth: AuthContext = Depends(get_auth_context),
) -> Response:
    """Forward one client message to its push-channel session."""
    if not session_id:
        raise ValidationError(
            "Missing sessionId query parameter", detail={"parameter": "sessionId"}
        )
    bridge = _registry(request).get(session_id)
    if not isinstance(bridge, PushChannelBridge):
        raise SessionNotFoundError(session_id)

    message = await _read_message(request)
    await bridge.submit(message)
    return PlainTextResponse("Accepted", status_code=202)


@router.post("/mcp")
async def unified_message(
    request: Request,
    mcp_session_id: Annotated[Optional[str], Header(alias=SESSION_HEADER)] = None,
    auth: AuthContext = Depends(get_auth_context),
) -> Response:
    """Single-endpoint binding; an ``initialize`` request without a session starts one."""
    registry = _registry(request)
    message = await _read_message(request)

    if mcp_session_id:
        bridge = registry.get(mcp_session_id)
        if not isinstance(bridge, UnifiedBridge):
            raise SessionNotFoundError(mcp_session_id)
    elif _is_initialize(message):
        bridge = registry.spawn(
            UnifiedBridge(new_session_id(), request.app.state.agent_server)
        )
        logger.info(
            "Unified session opened",
            extra={"session_id": bridge.session_id, "principal_id": auth.user_id},
        )
    else:
        raise ValidationError(
            f"Missing {SESSION_HEADER} header", detail={"header": SESSION_HEADER}
        )

    reply = await bridge.exchange(message)
    headers = {SESSION_HEADER: bridge.session_id}
    if reply is None:
        return Response(status_code=202, headers=headers)
    return Response(
        content=encode_message(reply), media_type="application/json", headers=headers
    )


@router.delete("/mcp")
async def close_unified_session(
    request: Request,
    mcp_session_id: Annotated[Optional[str], Header(alias=SESSION_HEADER)] = None,
    auth: AuthContext = Depends(get_auth_context),
) -> Response:
    registry = _registry(request)
    registry.get(mcp_session_id)
    registry.close(mcp_session_id)
    return Response(status_code=204)


__all__ = ["router", "MESSAGES_PATH", "SESSION_HEADER"]
