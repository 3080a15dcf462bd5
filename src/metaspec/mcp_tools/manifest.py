"""MCP tools for manifest creation, phase tracking, and readiness queries."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from mcp.types import TextContent, Tool

from metaspec.errors import ManifestError
from metaspec.mcp_tools.common import _error, _require_strs, _text, _validate_str
from metaspec.models import PHASES, STATUSES

_META_SPEC_DIR_PROP = {
    "type": "string",
    "description": "Meta-spec directory relative to the project root (default: resolved from the current branch)",
}
_PHASE_PROP = {"type": "string", "enum": list(PHASES), "description": "Workflow phase"}


def register() -> tuple[list[Tool], dict[str, Callable[..., Any]]]:
    """Return (tool_definitions, handler_map) for manifest tools."""
    tools = [
        Tool(
            name="init_meta_spec",
            description="Create manifest.json for a new meta-spec (no sub-specs yet). Fails if one already exists.",
            inputSchema={
                "type": "object",
                "properties": {
                    "meta_spec_dir": {
                        "type": "string",
                        "description": "Meta-spec directory relative to the project root, e.g. specs/001-renderer",
                    },
                    "title": {"type": "string", "description": "Meta-spec title"},
                    "user_story_file": {"type": "string", "default": "user-story.md"},
                    "breakdown_file": {"type": "string", "default": "breakdown.md"},
                },
                "required": ["meta_spec_dir", "title"],
            },
        ),
        Tool(
            name="add_sub_spec",
            description="Add a sub-spec. New sub-specs start with specify/plan/tasks pending and implement blocked.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Sub-spec id, NNN-name (e.g. 001-parser)"},
                    "title": {"type": "string", "description": "Sub-spec title"},
                    "depends": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Sub-spec ids whose implement phase must complete first",
                    },
                    "meta_spec_dir": _META_SPEC_DIR_PROP,
                },
                "required": ["id", "title"],
            },
        ),
        Tool(
            name="update_phase",
            description="Set one phase status of a sub-spec. A completed phase never changes.",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Sub-spec id"},
                    "phase": _PHASE_PROP,
                    "status": {"type": "string", "enum": list(STATUSES), "description": "New status"},
                    "meta_spec_dir": _META_SPEC_DIR_PROP,
                },
                "required": ["id", "phase", "status"],
            },
        ),
        Tool(
            name="set_worktree",
            description="Record the git worktree path of a sub-spec (null clears it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "id": {"type": "string", "description": "Sub-spec id"},
                    "path": {"type": ["string", "null"], "description": "Worktree path"},
                    "meta_spec_dir": _META_SPEC_DIR_PROP,
                },
                "required": ["id", "path"],
            },
        ),
        Tool(
            name="mark_scheduled",
            description="Store the approved implementation schedule and unblock implement phases",
            inputSchema={
                "type": "object",
                "properties": {
                    "schedule": {"type": ["object", "array"], "description": "Schedule document (stored verbatim)"},
                    "meta_spec_dir": _META_SPEC_DIR_PROP,
                },
                "required": ["schedule"],
            },
        ),
        Tool(
            name="get_ready",
            description="Sub-spec ids ready to start a phase, in manifest order",
            inputSchema={
                "type": "object",
                "properties": {"phase": _PHASE_PROP, "meta_spec_dir": _META_SPEC_DIR_PROP},
                "required": ["phase"],
            },
        ),
        Tool(
            name="get_next",
            description="First sub-spec id ready for a phase, or null",
            inputSchema={
                "type": "object",
                "properties": {"phase": _PHASE_PROP, "meta_spec_dir": _META_SPEC_DIR_PROP},
                "required": ["phase"],
            },
        ),
        Tool(
            name="all_complete",
            description="True when every sub-spec has completed the phase (false for an empty manifest)",
            inputSchema={
                "type": "object",
                "properties": {"phase": _PHASE_PROP, "meta_spec_dir": _META_SPEC_DIR_PROP},
                "required": ["phase"],
            },
        ),
        Tool(
            name="get_progress",
            description="Per-phase status counts across all sub-specs",
            inputSchema={"type": "object", "properties": {"meta_spec_dir": _META_SPEC_DIR_PROP}},
        ),
        Tool(
            name="get_summary",
            description="Status summary of the meta-spec (markdown by default, plain text with markdown=false)",
            inputSchema={
                "type": "object",
                "properties": {
                    "markdown": {"type": "boolean", "default": True},
                    "meta_spec_dir": _META_SPEC_DIR_PROP,
                },
            },
        ),
        Tool(
            name="get_manifest",
            description="Full manifest document as JSON",
            inputSchema={"type": "object", "properties": {"meta_spec_dir": _META_SPEC_DIR_PROP}},
        ),
    ]

    handlers: dict[str, Callable[..., Any]] = {
        "init_meta_spec": _handle_init_meta_spec,
        "add_sub_spec": _handle_add_sub_spec,
        "update_phase": _handle_update_phase,
        "set_worktree": _handle_set_worktree,
        "mark_scheduled": _handle_mark_scheduled,
        "get_ready": _handle_get_ready,
        "get_next": _handle_get_next,
        "all_complete": _handle_all_complete,
        "get_progress": _handle_get_progress,
        "get_summary": _handle_get_summary,
        "get_manifest": _handle_get_manifest,
    }

    return tools, handlers


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_init_meta_spec(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "meta_spec_dir", "title"):
        return err
    for key in ("user_story_file", "breakdown_file"):
        if err := _validate_str(arguments.get(key), key):
            return err
    try:
        store = _get_store(arguments)
        manifest = store.init_meta_spec(
            arguments["title"],
            user_story_file=arguments.get("user_story_file", "user-story.md"),
            breakdown_file=arguments.get("breakdown_file", "breakdown.md"),
        )
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text({"manifest": store.storage.location, "meta_spec": manifest.meta_spec.to_dict()})


async def _handle_add_sub_spec(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "id", "title"):
        return err
    depends = arguments.get("depends") or []
    if not isinstance(depends, list) or not all(isinstance(d, str) for d in depends):
        return _text({"error": "depends must be an array of strings", "code": "validation_error"})
    try:
        spec = _get_store(arguments).add_sub_spec(arguments["id"], arguments["title"], depends)
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(spec.to_dict())


async def _handle_update_phase(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "id", "phase", "status"):
        return err
    try:
        spec = _get_store(arguments).update_phase(arguments["id"], arguments["phase"], arguments["status"])
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(spec.to_dict())


async def _handle_set_worktree(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "id"):
        return err
    if err := _validate_str(arguments.get("path"), "path"):
        return err
    try:
        spec = _get_store(arguments).set_worktree_path(arguments["id"], arguments.get("path"))
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(spec.to_dict())


async def _handle_mark_scheduled(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    try:
        manifest = _get_store(arguments).mark_scheduled(arguments.get("schedule"))
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    ready = [s.id for s in manifest.sub_specs if s.phases["implement"] == "pending"]
    return _text({"scheduled": True, "implement_pending": ready})


async def _handle_get_ready(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "phase"):
        return err
    try:
        ready = _get_store(arguments).get_ready_for_phase(arguments["phase"])
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(ready)


async def _handle_get_next(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "phase"):
        return err
    try:
        nxt = _get_store(arguments).get_next_for_phase(arguments["phase"])
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text({"next": nxt})


async def _handle_all_complete(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    if err := _require_strs(arguments, "phase"):
        return err
    try:
        done = _get_store(arguments).all_phase_complete(arguments["phase"])
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text({"phase": arguments["phase"], "complete": done})


async def _handle_get_progress(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    try:
        progress = _get_store(arguments).progress()
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(progress)


async def _handle_get_summary(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store
    from metaspec.summary import generate_markdown_summary

    try:
        store = _get_store(arguments)
        if arguments.get("markdown", True):
            return _text(generate_markdown_summary(store._snapshot()))
        return _text(store.summary())
    except (ManifestError, ValueError) as exc:
        return _error(exc)


async def _handle_get_manifest(arguments: dict[str, Any]) -> list[TextContent]:
    from metaspec.mcp_server import _get_store

    try:
        manifest = _get_store(arguments).load()
    except (ManifestError, ValueError) as exc:
        return _error(exc)
    return _text(manifest.to_dict())
