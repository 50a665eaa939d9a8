"""ASGI request logging middleware."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

LOGGED_HEADERS = ("user-agent", "origin", "referer", "accept")


def redact_authorization(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return f"{value[:15]}...[redacted]"


class RequestLoggingMiddleware:
    """Logs each HTTP request on arrival and on completion.

    Written against raw ASGI so streaming responses pass through untouched.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        method = scope.get("method", "")
        path = scope.get("path", "")
        logged: Dict[str, Optional[str]] = {
            "authorization": redact_authorization(headers.get("authorization"))
        }
        for name in LOGGED_HEADERS:
            logged[name] = headers.get(name)
        logger.info(
            "Incoming request",
            extra={"method": method, "path": path, "headers": logged},
        )

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info(
                "Request completed",
                extra={
                    "method": method,
                    "path": path,
                    "status": status_code,
                    "duration_ms": f"{duration_ms:.2f}",
                },
            )


__all__ = ["RequestLoggingMiddleware", "redact_authorization"]
