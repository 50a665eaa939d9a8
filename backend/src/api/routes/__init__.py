"""HTTP API route handlers."""

from . import agent, cards, discovery, system

__all__ = ["agent", "cards", "discovery", "system"]
