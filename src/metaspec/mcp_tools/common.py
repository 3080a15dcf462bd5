"""Pure helpers shared across MCP tool modules.

This module has NO dependency on ``mcp_server`` module globals, so it can
be imported freely without triggering circular-import issues.
"""

from __future__ import annotations

import json
from typing import Any

from mcp.types import TextContent

from metaspec.errors import ManifestError


def _text(content: object) -> list[TextContent]:
    if isinstance(content, str):
        return [TextContent(type="text", text=content)]
    return [TextContent(type="text", text=json.dumps(content, indent=2, default=str))]


def _error(exc: Exception) -> list[TextContent]:
    """Structured error payload: ``{"error": message, "code": stable_code}``."""
    code = exc.code if isinstance(exc, ManifestError) else "validation_error"
    return _text({"error": str(exc), "code": code})


def _validate_str(value: Any, name: str, *, required: bool = False) -> list[TextContent] | None:
    """Return a validation error if *value* is not a ``str`` (or missing when required)."""
    if value is None:
        if required:
            return _text({"error": f"{name} is required", "code": "validation_error"})
        return None
    if not isinstance(value, str):
        return _text({"error": f"{name} must be a string", "code": "validation_error"})
    return None


def _require_strs(arguments: dict[str, Any], *names: str) -> list[TextContent] | None:
    """First validation error among the required string arguments *names*."""
    for name in names:
        if err := _validate_str(arguments.get(name), name, required=True):
            return err
    return None
