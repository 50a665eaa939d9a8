"""Minimal HTML pages for humans who open the server in a browser."""

from __future__ import annotations

from html import escape

_STYLE = """
      body {
        font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial, sans-serif;
        max-width: 600px;
        margin: 40px auto;
        padding: 20px;
        text-align: center;
        line-height: 1.6;
        color: #333;
      }
      h1 { font-size: 24px; margin-bottom: 20px; }
      code { background: #f3f3f3; padding: 2px 4px; border-radius: 3px; }
"""


def _page(title: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>{escape(title)}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>{_STYLE}</style>
  </head>
  <body>
{body}
  </body>
</html>
"""


def render_help_page() -> str:
    return _page(
        "Supascribe Notes MCP Server",
        """    <h1>Supascribe Notes MCP Server</h1>
    <p>This is a Model Context Protocol (MCP) server for index cards stored in Supabase.</p>
    <p>To use it, connect an MCP client to <code>/sse</code> or <code>/mcp</code>,
    or call the REST API described at <code>/openapi.json</code>.</p>""",
    )


def render_unauthorized_page(metadata_url: str) -> str:
    return _page(
        "Authentication required",
        f"""    <h1>Authentication required</h1>
    <p>This endpoint is meant for MCP clients and API integrations, which sign in
    through the configured identity provider before calling it.</p>
    <p>Client configuration is published at
    <a href="{escape(metadata_url)}">{escape(metadata_url)}</a>.</p>""",
    )


__all__ = ["render_help_page", "render_unauthorized_page"]
