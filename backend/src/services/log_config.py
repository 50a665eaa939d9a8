"""Root logger setup.

Modules log through ``logging.getLogger(__name__)`` and pass structured context
via ``extra={...}``. The formatter below renders those extra keys as trailing
``key=value`` pairs so they survive in plain-text container logs.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from .config import AppConfig

# Attributes present on every LogRecord; anything else came from ``extra``.
_RESERVED_ATTRS = frozenset(
    {
        "args", "asctime", "created", "exc_info", "exc_text", "filename",
        "funcName", "levelname", "levelno", "lineno", "module", "msecs",
        "message", "msg", "name", "pathname", "process", "processName",
        "relativeCreated", "stack_info", "thread", "threadName", "taskName",
    }
)

DEV_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
PROD_FORMAT = "ts=%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)r"


class ExtraFieldsFormatter(logging.Formatter):
    """Formatter that appends ``extra`` fields to the rendered line."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not extras:
            return base
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(extras.items()))
        return f"{base} {rendered}"


def configure_logging(config: Optional[AppConfig] = None, *, level: Optional[str] = None) -> None:
    """Install a single stream handler on the root logger."""
    resolved_level = level or (config.log_level if config else "INFO")
    fmt = PROD_FORMAT if config is not None and config.is_production else DEV_FORMAT

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ExtraFieldsFormatter(fmt))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_supascribe_handler", False):
            root.removeHandler(existing)
    handler._supascribe_handler = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(resolved_level)


__all__ = ["configure_logging", "ExtraFieldsFormatter"]
