"""Branch-name conventions and meta-spec directory discovery.

Branch naming:
    Meta-spec:  001-meta-spec-name
    Sub-spec:   001-meta-spec-name-001-sub-spec-name

The meta part of a sub-spec branch is matched greedily, so the sub-spec id
is always the last ``NNN-name`` segment.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path

from metaspec.core import DEFAULT_SPECS_DIR, SPECIFY_DIR_NAME, is_meta_spec_dir

logger = logging.getLogger(__name__)

SUB_SPEC_BRANCH_RE = re.compile(r"^([0-9]{3}-[a-z0-9-]+)-([0-9]{3}-[a-z0-9-]+)$")
NUMERIC_PREFIX_RE = re.compile(r"^([0-9]{3})-")
BRANCH_ENV_VAR = "SPECIFY_FEATURE"


def is_sub_spec_branch(branch: str) -> bool:
    return SUB_SPEC_BRANCH_RE.match(branch) is not None


def parse_sub_spec_branch(branch: str) -> tuple[str, str] | None:
    """Split ``001-feature-002-adapter`` into ``("001-feature", "002-adapter")``."""
    m = SUB_SPEC_BRANCH_RE.match(branch)
    if m is None:
        return None
    return m.group(1), m.group(2)


def _git(args: list[str], cwd: Path | None) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.debug("git %s failed: %s", " ".join(args), exc)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def get_repo_root(start: Path | None = None) -> Path:
    """Repository root: git toplevel, else the directory holding .specify/, else start."""
    base = (start or Path.cwd()).resolve()
    toplevel = _git(["rev-parse", "--show-toplevel"], base)
    if toplevel:
        return Path(toplevel)
    for parent in [base, *base.parents]:
        if (parent / SPECIFY_DIR_NAME).is_dir():
            return parent
    return base


def get_current_branch(repo_root: Path | None = None) -> str | None:
    """Branch from $SPECIFY_FEATURE, else git HEAD, else None."""
    env_branch = os.environ.get(BRANCH_ENV_VAR, "").strip()
    if env_branch:
        return env_branch
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], repo_root)
    if branch == "HEAD":
        # Detached HEAD carries no branch name.
        return None
    return branch


def _dirs_with_prefix(specs_dir: Path, prefix: str) -> list[Path]:
    if not specs_dir.is_dir():
        return []
    return sorted(d for d in specs_dir.glob(f"{prefix}-*") if d.is_dir())


def find_meta_spec_dir(repo_root: Path, branch: str | None, specs_dir: str = DEFAULT_SPECS_DIR) -> Path | None:
    """Locate the meta-spec directory for the current context.

    Resolution order:
    1. Sub-spec branch: the ``specs/<NNN>-*`` manifest dir matching the meta prefix.
    2. Branch with a numeric prefix: ``specs/<NNN>-*`` holding a manifest.
    3. The first ``specs/*/manifest.json`` in name order.
    """
    root = repo_root / specs_dir
    if branch:
        parsed = parse_sub_spec_branch(branch)
        candidates: list[Path] = []
        if parsed is not None:
            meta_id = parsed[0]
            exact = root / meta_id
            if is_meta_spec_dir(exact):
                return exact
            prefix_match = NUMERIC_PREFIX_RE.match(meta_id)
            if prefix_match:
                candidates = _dirs_with_prefix(root, prefix_match.group(1))
        else:
            prefix_match = NUMERIC_PREFIX_RE.match(branch)
            if prefix_match:
                candidates = _dirs_with_prefix(root, prefix_match.group(1))
        for candidate in candidates:
            if is_meta_spec_dir(candidate):
                return candidate

    if root.is_dir():
        for candidate in sorted(root.iterdir()):
            if candidate.is_dir() and is_meta_spec_dir(candidate):
                return candidate
    return None
