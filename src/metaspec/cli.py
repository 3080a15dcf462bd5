"""CLI for meta-spec manifest management.

Every manifest command takes the meta-spec directory (the one holding
manifest.json) as its first argument.

Usage:
    metaspec init specs/001-renderer "HTML Renderer"          # Create manifest
    metaspec add-sub-spec specs/001-renderer 001-parser "Parser" '[]'
    metaspec add-sub-spec specs/001-renderer 002-adapter "Adapter" 001-parser
    metaspec update-phase specs/001-renderer 001-parser specify complete
    metaspec update-worktree specs/001-renderer 001-parser ../repo-worktrees/x
    metaspec mark-scheduled specs/001-renderer @specs/001-renderer/schedule.json
    metaspec get-ready specs/001-renderer plan                # JSON array of ids
    metaspec get-next specs/001-renderer plan                 # First ready id
    metaspec all-complete specs/001-renderer specify          # true / false
    metaspec summary specs/001-renderer                       # Status table
    metaspec show specs/001-renderer                          # Full manifest JSON
    metaspec find-meta-spec                                   # Resolve from branch
    metaspec lock-info specs/001-renderer                     # Who holds the lock
    metaspec unlock specs/001-renderer                        # Force-clear the lock
"""

from __future__ import annotations

import json as json_mod
from dataclasses import asdict
from pathlib import Path
from typing import Any

import click

from metaspec import __version__
from metaspec.branches import find_meta_spec_dir, get_current_branch, get_repo_root
from metaspec.cli_common import configure_logging, fail, get_store, handle_errors, load_config
from metaspec.lock import LOCK_DIRNAME, force_unlock, read_lock_info
from metaspec.summary import generate_markdown_summary


def _parse_depends(raw: str | None) -> list[str]:
    """Accept a JSON array (``'["001-a"]'``) or a comma list (``001-a,002-b``)."""
    if raw is None or not raw.strip():
        return []
    text = raw.strip()
    if text.startswith("["):
        try:
            value = json_mod.loads(text)
        except json_mod.JSONDecodeError as exc:
            fail(f"DEPENDS is not valid JSON: {exc}")
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            fail("DEPENDS must be a JSON array of strings")
        return value
    return [part.strip() for part in text.split(",") if part.strip()]


def _parse_schedule(raw: str) -> Any:
    """Schedule JSON given inline, as ``@path``, or as a path to an existing file."""
    text = raw
    path: Path | None = None
    if raw.startswith("@"):
        path = Path(raw[1:])
    elif not raw.lstrip().startswith(("{", "[")) and Path(raw).is_file():
        path = Path(raw)
    if path is not None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            fail(f"Schedule file not found: {path} ({exc.strerror})")
    try:
        return json_mod.loads(text)
    except json_mod.JSONDecodeError as exc:
        fail(f"Schedule is not valid JSON: {exc}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="metaspec")
@click.option("--strict", is_flag=True, help="Enforce phase ordering on update-phase")
@click.pass_context
def cli(ctx: click.Context, strict: bool) -> None:
    """Meta-spec manifest manager."""
    ctx.ensure_object(dict)
    ctx.obj["strict"] = strict
    configure_logging()


@cli.command()
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("title")
@click.option("--user-story-file", default="user-story.md", show_default=True)
@click.option("--breakdown-file", default="breakdown.md", show_default=True)
@click.pass_context
def init(ctx: click.Context, meta_spec_dir: Path, title: str, user_story_file: str, breakdown_file: str) -> None:
    """Initialize manifest.json for a meta-spec."""
    store = get_store(meta_spec_dir, strict=ctx.obj["strict"])
    with handle_errors():
        store.init_meta_spec(title, user_story_file=user_story_file, breakdown_file=breakdown_file)
    click.echo(str(meta_spec_dir / "manifest.json"))


@cli.command("add-sub-spec")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("sub_spec_id")
@click.argument("title")
@click.argument("depends", required=False)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def add_sub_spec(
    ctx: click.Context,
    meta_spec_dir: Path,
    sub_spec_id: str,
    title: str,
    depends: str | None,
    as_json: bool,
) -> None:
    """Add a sub-spec (DEPENDS: JSON array or comma-separated ids)."""
    deps = _parse_depends(depends)
    store = get_store(meta_spec_dir, strict=ctx.obj["strict"])
    with handle_errors():
        spec = store.add_sub_spec(sub_spec_id, title, deps)
    if as_json:
        click.echo(json_mod.dumps(spec.to_dict(), indent=2))
        return
    click.echo(f"Added {spec.id}: {spec.title} (branch {spec.branch})")


@cli.command("update-phase")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("sub_spec_id")
@click.argument("phase")
@click.argument("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def update_phase(
    ctx: click.Context,
    meta_spec_dir: Path,
    sub_spec_id: str,
    phase: str,
    status: str,
    as_json: bool,
) -> None:
    """Set PHASE of a sub-spec to STATUS."""
    store = get_store(meta_spec_dir, strict=ctx.obj["strict"])
    with handle_errors():
        store.update_phase(sub_spec_id, phase, status)
    if as_json:
        click.echo(json_mod.dumps({"success": True, "sub_spec": sub_spec_id, "phase": phase, "status": status}))
        return
    click.echo(f"Updated {sub_spec_id}: {phase}={status}")


@cli.command("update-worktree")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("sub_spec_id")
@click.argument("worktree_path", required=False)
@click.option("--clear", is_flag=True, help="Clear the stored worktree path")
def update_worktree(meta_spec_dir: Path, sub_spec_id: str, worktree_path: str | None, clear: bool) -> None:
    """Record the worktree path for a sub-spec."""
    if not clear and not worktree_path:
        fail("WORKTREE_PATH is required unless --clear is given")
    store = get_store(meta_spec_dir)
    with handle_errors():
        store.set_worktree_path(sub_spec_id, None if clear else worktree_path)
    if clear:
        click.echo(f"Cleared worktree for {sub_spec_id}")
    else:
        click.echo(f"Worktree for {sub_spec_id}: {worktree_path}")


@cli.command("mark-scheduled")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("schedule")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def mark_scheduled(meta_spec_dir: Path, schedule: str, as_json: bool) -> None:
    """Mark the meta-spec scheduled (SCHEDULE: JSON text, @file, or file path)."""
    data = _parse_schedule(schedule)
    store = get_store(meta_spec_dir)
    with handle_errors():
        store.mark_scheduled(data)
    if as_json:
        click.echo(json_mod.dumps({"success": True, "scheduled": True}))
        return
    click.echo("Meta-spec scheduled")


@cli.command("get-ready")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("phase")
def get_ready(meta_spec_dir: Path, phase: str) -> None:
    """Print a JSON array of sub-spec ids ready for PHASE."""
    store = get_store(meta_spec_dir)
    with handle_errors():
        ready = store.get_ready_for_phase(phase)
    click.echo(json_mod.dumps(ready))


@cli.command("get-next")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("phase")
def get_next(meta_spec_dir: Path, phase: str) -> None:
    """Print the first sub-spec id ready for PHASE (nothing if none)."""
    store = get_store(meta_spec_dir)
    with handle_errors():
        nxt = store.get_next_for_phase(phase)
    if nxt:
        click.echo(nxt)


@cli.command("all-complete")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.argument("phase")
def all_complete(meta_spec_dir: Path, phase: str) -> None:
    """Print true if every sub-spec has completed PHASE."""
    store = get_store(meta_spec_dir)
    with handle_errors():
        done = store.all_phase_complete(phase)
    click.echo("true" if done else "false")


@cli.command()
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--markdown", is_flag=True, help="Markdown summary with progress and ready work")
def summary(meta_spec_dir: Path, markdown: bool) -> None:
    """Show the manifest summary."""
    store = get_store(meta_spec_dir)
    with handle_errors():
        if markdown:
            click.echo(generate_markdown_summary(store._snapshot()))
        else:
            click.echo(store.summary())


@cli.command()
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
def show(meta_spec_dir: Path) -> None:
    """Print the full manifest as JSON."""
    store = get_store(meta_spec_dir)
    with handle_errors():
        manifest = store.load()
    click.echo(json_mod.dumps(manifest.to_dict(), indent=2))


@cli.command("find-meta-spec")
@click.option("--branch", default=None, help="Branch name (default: $SPECIFY_FEATURE or git HEAD)")
def find_meta_spec(branch: str | None) -> None:
    """Print the meta-spec directory for the current branch (empty if none)."""
    repo_root = get_repo_root()
    branch = branch or get_current_branch(repo_root)
    config = load_config()
    found = find_meta_spec_dir(repo_root, branch, config.get("specs_dir", "specs"))
    click.echo(str(found) if found else "")


@cli.command("lock-info")
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def lock_info(meta_spec_dir: Path, as_json: bool) -> None:
    """Show who holds the manifest lock."""
    info = read_lock_info(meta_spec_dir / LOCK_DIRNAME)
    if as_json:
        click.echo(json_mod.dumps(None if info is None else asdict(info), indent=2))
        return
    if info is None:
        click.echo("Unlocked")
        return
    age = f"{int(info.age_seconds)}s" if info.age_seconds is not None else "unknown"
    click.echo(f"Locked by PID {info.pid or 'unknown'} since {info.timestamp or 'unknown'} (age {age})")
    if info.command:
        click.echo(f"  Command: {info.command}")


@cli.command()
@click.argument("meta_spec_dir", type=click.Path(file_okay=False, path_type=Path))
def unlock(meta_spec_dir: Path) -> None:
    """Force-remove the manifest lock (use only when the holder is gone)."""
    if force_unlock(meta_spec_dir / LOCK_DIRNAME):
        click.echo("Lock removed")
    else:
        click.echo("No lock present")


if __name__ == "__main__":
    cli()
