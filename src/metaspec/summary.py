"""Human-readable renderings of a manifest.

``render_summary`` produces the plain-text status block printed by the CLI.
``generate_markdown_summary`` is the richer view served to agents over MCP:
per-phase progress, what is ready next, and what is waiting on dependencies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from metaspec.models import PHASES
from metaspec.store_queries import ready_ids

if TYPE_CHECKING:
    from metaspec.models import Manifest

NO_MANIFEST = "No manifest found"


def _sanitize_title(title: str) -> str:
    """Collapse whitespace/control characters so a title stays on one line."""
    return " ".join("".join(ch if ch.isprintable() else " " for ch in title).split())


def render_summary(manifest: Manifest | None) -> str:
    if manifest is None:
        return NO_MANIFEST
    meta = manifest.meta_spec
    lines = [
        f"Meta-Spec: {_sanitize_title(meta.title)} ({meta.id})",
        f"Scheduled: {'true' if meta.scheduled else 'false'}",
        "",
        "Sub-Specs:",
    ]
    for spec in manifest.sub_specs:
        phases = " ".join(f"{p}={spec.phases[p]}" for p in PHASES)
        lines.append(f"  {spec.id}: {phases}")
    return "\n".join(lines)


def generate_markdown_summary(manifest: Manifest | None) -> str:
    if manifest is None:
        return f"# Meta-Spec\n\n{NO_MANIFEST}\n"

    meta = manifest.meta_spec
    specs = manifest.sub_specs
    lines = [
        f"# Meta-Spec: {_sanitize_title(meta.title)} ({meta.id})",
        "",
        f"- Scheduled: {'yes' if meta.scheduled else 'no'}",
        f"- Sub-specs: {len(specs)}",
        "",
        "## Progress",
    ]
    for phase in PHASES:
        done = sum(1 for s in specs if s.phases[phase] == "complete")
        active = sum(1 for s in specs if s.phases[phase] == "in-progress")
        lines.append(f"- {phase}: {done}/{len(specs)} complete, {active} in progress")
    lines.append("")

    lines.append("## Ready")
    any_ready = False
    for phase in PHASES:
        ready = ready_ids(manifest, phase)
        if ready:
            any_ready = True
            lines.append(f"- {phase}: {', '.join(ready)}")
    if not any_ready:
        lines.append("- (nothing ready)")
    lines.append("")

    implemented = {s.id for s in specs if s.phases["implement"] == "complete"}
    waiting = [
        (s.id, [d for d in s.depends if d not in implemented])
        for s in specs
        if s.phases["implement"] != "complete" and any(d not in implemented for d in s.depends)
    ]
    if waiting:
        lines.append("## Waiting on dependencies")
        for sub_id, deps in waiting:
            lines.append(f"- {sub_id} <- {', '.join(deps)}")
        lines.append("")

    lines.append("## Sub-Specs")
    for spec in specs:
        phases = " ".join(f"{p}={spec.phases[p]}" for p in PHASES)
        worktree = f" (worktree: {spec.worktree})" if spec.worktree else ""
        lines.append(f'- {spec.id} "{_sanitize_title(spec.title)}" {phases}{worktree}')
    lines.append("")
    return "\n".join(lines)
