"""MCP server for meta-spec manifests.

Primary interface for agents. Reads and writes manifest.json directly under
the manifest lock, no daemon. Exposes ManifestStore operations as MCP tools.

Usage:
    metaspec-mcp                                      # Project from .specify/, meta-spec from branch
    metaspec-mcp --project /path/to/project           # Explicit project root
    metaspec-mcp --meta-spec specs/001-renderer       # Pin the default meta-spec
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool

from metaspec.branches import find_meta_spec_dir, get_current_branch, get_repo_root
from metaspec.core import SPECIFY_DIR_NAME, ManifestStore, ProjectConfig, read_config
from metaspec.errors import NotFound
from metaspec.mcp_tools import manifest as manifest_tools
from metaspec.mcp_tools.common import _text
from metaspec.summary import generate_markdown_summary

# ---------------------------------------------------------------------------
# Server setup
# ---------------------------------------------------------------------------

server = Server("metaspec")
_project_root: Path | None = None
_meta_spec_dir: Path | None = None
_config: ProjectConfig | None = None
_logger: logging.Logger | None = None

_TOOLS, _HANDLERS = manifest_tools.register()


def _get_project_root() -> Path:
    return _project_root or Path.cwd()


def _safe_path(raw: str) -> Path:
    """Resolve a user-supplied directory within the project root.

    Raises ValueError for paths that escape the project directory.
    """
    base = _get_project_root().resolve()
    resolved = (base / raw).resolve()
    try:
        resolved.relative_to(base)
    except ValueError:
        msg = f"Path escapes project directory: {raw}"
        raise ValueError(msg) from None
    return resolved


def _resolve_meta_spec_dir(arguments: dict[str, Any]) -> Path:
    """Explicit ``meta_spec_dir`` argument, else --meta-spec, else branch discovery."""
    raw = arguments.get("meta_spec_dir")
    if raw:
        if not isinstance(raw, str):
            msg = "meta_spec_dir must be a string"
            raise ValueError(msg)
        return _safe_path(raw)
    if _meta_spec_dir is not None:
        return _meta_spec_dir
    root = _get_project_root()
    specs_dir = (_config or {}).get("specs_dir", "specs")
    found = find_meta_spec_dir(root, get_current_branch(root), specs_dir)
    if found is None:
        msg = f"No meta-spec directory found under {root / specs_dir}; pass meta_spec_dir"
        raise NotFound(msg)
    return found


def _get_store(arguments: dict[str, Any]) -> ManifestStore:
    return ManifestStore.for_directory(_resolve_meta_spec_dir(arguments), config=_config)


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

SUMMARY_URI = "metaspec://summary"


@server.list_resources()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_resources() -> list[Resource]:
    return [
        Resource(
            uri=SUMMARY_URI,  # type: ignore[arg-type]
            name="Meta-Spec Status",
            description="Per-phase progress, ready sub-specs, and dependency waits for the active meta-spec",
            mimeType="text/markdown",
        ),
    ]


@server.read_resource()  # type: ignore[untyped-decorator,no-untyped-call]
async def read_summary(uri: Any) -> str:
    if str(uri) != SUMMARY_URI:
        msg = f"Unknown resource: {uri}"
        raise ValueError(msg)
    try:
        store = _get_store({})
    except NotFound:
        return generate_markdown_summary(None)
    return generate_markdown_summary(store._snapshot())


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@server.list_tools()  # type: ignore[untyped-decorator,no-untyped-call]
async def list_tools() -> list[Tool]:
    return list(_TOOLS)


@server.call_tool()  # type: ignore[untyped-decorator]
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    handler = _HANDLERS.get(name)
    if handler is None:
        return _text({"error": f"Unknown tool: {name}", "code": "unknown_tool"})
    t0 = time.monotonic()
    try:
        result: list[TextContent] = await handler(arguments or {})
    except Exception:
        if _logger:
            _logger.error("tool_error", extra={"tool": name, "args_data": arguments}, exc_info=True)
        raise
    duration_ms = round((time.monotonic() - t0) * 1000, 1)
    if _logger:
        _logger.info("tool_call", extra={"tool": name, "args_data": arguments, "duration_ms": duration_ms})
    return result


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def _run(project_path: Path | None, meta_spec: Path | None) -> None:
    global _project_root, _meta_spec_dir, _config, _logger

    root = (project_path or get_repo_root()).resolve()
    specify_dir = root / SPECIFY_DIR_NAME
    _project_root = root
    _config = read_config(specify_dir if specify_dir.is_dir() else None)
    _meta_spec_dir = (root / meta_spec).resolve() if meta_spec else None

    from metaspec.logging import LOGGER_NAME, setup_logging

    _logger = setup_logging(specify_dir) if specify_dir.is_dir() else logging.getLogger(LOGGER_NAME)
    _logger.info(
        "mcp_server_start",
        extra={"tool": "server", "args_data": {"project": str(root), "meta_spec": str(_meta_spec_dir or "")}},
    )

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    import asyncio

    parser = argparse.ArgumentParser(description="Meta-spec MCP server")
    parser.add_argument("--project", type=Path, default=None, help="Project root (default: git toplevel or .specify/ parent)")
    parser.add_argument("--meta-spec", type=Path, default=None, help="Default meta-spec directory, relative to the project root")
    args = parser.parse_args()

    asyncio.run(_run(args.project, args.meta_spec))


if __name__ == "__main__":
    main()
