"""Core manifest operations for meta-spec orchestration.

Single source of truth for manifest reads and writes. The CLI and the MCP
server both go through ``ManifestStore``; neither touches manifest.json
directly.

Convention-based discovery: a project has a `.specify/` directory at its
root (optionally holding `metaspec.json` config) and meta-specs under
`specs/<NNN-name>/manifest.json`.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, TypedDict

from metaspec.errors import AlreadyExists, DuplicateId, InvalidTransition, NotFound
from metaspec.lock import LockSettings
from metaspec.models import (
    DEFAULT_BREAKDOWN_FILE,
    DEFAULT_USER_STORY_FILE,
    INITIAL_PHASES,
    Manifest,
    MetaSpecInfo,
    SubSpec,
    now_iso,
    sub_spec_branch,
    validate_phase,
    validate_status,
    validate_sub_spec_id,
)
from metaspec.storage import MANIFEST_FILENAME, FileStorage, StorageBackend, write_atomic
from metaspec.store_queries import PREVIOUS_PHASE, QueryMixin
from metaspec.summary import render_summary

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Convention-based discovery
# ---------------------------------------------------------------------------

SPECIFY_DIR_NAME = ".specify"
CONFIG_FILENAME = "metaspec.json"
DEFAULT_SPECS_DIR = "specs"


class LockConfig(TypedDict, total=False):
    max_attempts: int
    retry_delay: float
    stale_after: float
    strict_release: bool


class ProjectConfig(TypedDict, total=False):
    """Shape of .specify/metaspec.json."""

    specs_dir: str
    strict: bool
    lock: LockConfig


def find_specify_root(start: Path | None = None) -> Path:
    """Walk up from start (default cwd) looking for a .specify/ directory.

    Returns the .specify/ directory path (not the project root).
    """
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        candidate = parent / SPECIFY_DIR_NAME
        if candidate.is_dir():
            return candidate
    msg = f"No {SPECIFY_DIR_NAME}/ directory found in {current} or any parent"
    raise FileNotFoundError(msg)


def _default_config() -> ProjectConfig:
    return ProjectConfig(specs_dir=DEFAULT_SPECS_DIR, strict=False, lock=LockConfig())


def read_config(specify_dir: Path | None) -> ProjectConfig:
    """Read .specify/metaspec.json. Returns defaults if missing or corrupt."""
    defaults = _default_config()
    if specify_dir is None:
        return defaults
    config_path = specify_dir / CONFIG_FILENAME
    if not config_path.exists():
        return defaults
    try:
        raw = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to read %s, using defaults: %s", config_path, exc)
        return defaults
    if not isinstance(raw, dict):
        logger.warning("Config %s is not an object, using defaults", config_path)
        return defaults

    config = defaults
    if isinstance(raw.get("specs_dir"), str) and raw["specs_dir"].strip():
        config["specs_dir"] = raw["specs_dir"]
    if isinstance(raw.get("strict"), bool):
        config["strict"] = raw["strict"]
    if isinstance(raw.get("lock"), dict):
        config["lock"] = raw["lock"]
    return config


def write_config(specify_dir: Path, config: dict[str, Any] | ProjectConfig) -> None:
    """Write .specify/metaspec.json."""
    write_atomic(specify_dir / CONFIG_FILENAME, json.dumps(config, indent=2) + "\n")


def manifest_path(meta_spec_dir: Path) -> Path:
    return Path(meta_spec_dir) / MANIFEST_FILENAME


def is_meta_spec_dir(path: Path) -> bool:
    return manifest_path(path).is_file()


# ---------------------------------------------------------------------------
# ManifestStore
# ---------------------------------------------------------------------------


class ManifestStore(QueryMixin):
    """Read-modify-write operations over one meta-spec manifest.

    Every mutation runs entirely inside the storage backend's lock: read the
    current document, apply the change to a parsed copy, write the whole
    document back atomically. Any exception before the write leaves the
    stored document untouched.
    """

    def __init__(
        self,
        storage: StorageBackend,
        *,
        meta_spec_id: str | None = None,
        strict: bool = False,
    ) -> None:
        self.storage = storage
        self.meta_spec_id = meta_spec_id
        self.strict = strict

    @classmethod
    def for_directory(
        cls,
        meta_spec_dir: str | Path,
        *,
        config: ProjectConfig | None = None,
        strict: bool | None = None,
    ) -> ManifestStore:
        """File-backed store for ``<meta_spec_dir>/manifest.json``.

        The meta-spec id is the directory name, matching the branch
        convention ``<meta-spec-id>-<sub-spec-id>``.
        """
        directory = Path(meta_spec_dir)
        cfg = config or _default_config()
        storage = FileStorage(manifest_path(directory), LockSettings.from_config(dict(cfg.get("lock", {}))))
        return cls(
            storage,
            meta_spec_id=directory.resolve().name,
            strict=cfg.get("strict", False) if strict is None else strict,
        )

    def __repr__(self) -> str:
        return f"ManifestStore({self.storage.location!r}, strict={self.strict})"

    # -- Reads ---------------------------------------------------------------

    def exists(self) -> bool:
        return self.storage.exists()

    def _snapshot(self) -> Manifest | None:
        if not self.storage.exists():
            return None
        try:
            return Manifest.from_dict(self.storage.read())
        except NotFound:
            # Removed between the exists() check and the read.
            return None

    def load(self) -> Manifest:
        """Parse the current document. Raises NotFound / MalformedDocument."""
        return Manifest.from_dict(self.storage.read())

    def get_sub_spec(self, sub_spec_id: str) -> SubSpec:
        manifest = self.load()
        spec = manifest.find(sub_spec_id)
        if spec is None:
            msg = f"Sub-spec not found: {sub_spec_id}"
            raise NotFound(msg)
        return spec

    def summary(self) -> str:
        return render_summary(self._snapshot())

    # -- Mutation protocol ---------------------------------------------------

    def _commit(self, operation: str, manifest: Manifest, args: dict[str, Any]) -> None:
        self.storage.write(dict(manifest.to_dict()))
        logger.info("manifest_update", extra={"tool": operation, "args_data": {"manifest": self.storage.location, **args}})

    def _require_sub_spec(self, manifest: Manifest, sub_spec_id: str) -> SubSpec:
        spec = manifest.find(sub_spec_id)
        if spec is None:
            msg = f"Sub-spec not found: {sub_spec_id} (in {self.storage.location})"
            raise NotFound(msg)
        return spec

    # -- Mutations -----------------------------------------------------------

    def init_meta_spec(
        self,
        title: str,
        *,
        meta_spec_id: str | None = None,
        user_story_file: str = DEFAULT_USER_STORY_FILE,
        breakdown_file: str = DEFAULT_BREAKDOWN_FILE,
    ) -> Manifest:
        """Create a new manifest with no sub-specs. Raises AlreadyExists."""
        meta_id = meta_spec_id or self.meta_spec_id
        if not meta_id:
            msg = "meta_spec_id is required for stores not bound to a directory"
            raise ValueError(msg)
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        self.storage.create_location()
        with self.storage.lock():
            if self.storage.exists():
                msg = f"Manifest already exists: {self.storage.location}"
                raise AlreadyExists(msg)
            manifest = Manifest(
                meta_spec=MetaSpecInfo(
                    id=meta_id,
                    title=title,
                    user_story_file=user_story_file,
                    breakdown_file=breakdown_file,
                    scheduled=False,
                    created_at=now_iso(),
                ),
            )
            self._commit("init", manifest, {"id": meta_id, "title": title})
        self.meta_spec_id = meta_id
        return manifest

    def add_sub_spec(self, sub_spec_id: str, title: str, depends: list[str] | tuple[str, ...] = ()) -> SubSpec:
        """Append a sub-spec with initial phases pending/pending/pending/blocked."""
        validate_sub_spec_id(sub_spec_id)
        if not title or not title.strip():
            msg = "Title cannot be empty"
            raise ValueError(msg)
        deps: list[str] = []
        for dep in depends:
            validate_sub_spec_id(dep)
            if dep == sub_spec_id:
                msg = f"Sub-spec {sub_spec_id} cannot depend on itself"
                raise InvalidTransition(msg)
            if dep not in deps:
                deps.append(dep)

        with self.storage.lock():
            manifest = self.load()
            if manifest.find(sub_spec_id) is not None:
                msg = f"Sub-spec id already exists: {sub_spec_id}"
                raise DuplicateId(msg)
            if self.strict:
                missing = [d for d in deps if manifest.find(d) is None]
                if missing:
                    msg = f"Invalid dependency IDs (not found): {', '.join(missing)}"
                    raise InvalidTransition(msg)
            spec = SubSpec(
                id=sub_spec_id,
                title=title,
                depends=deps,
                phases=dict(INITIAL_PHASES),
                branch=sub_spec_branch(manifest.meta_spec.id, sub_spec_id),
                worktree=None,
                created_at=now_iso(),
            )
            manifest.sub_specs.append(spec)
            self._commit("add_sub_spec", manifest, {"id": sub_spec_id, "depends": deps})
        return spec

    def _check_transition(self, manifest: Manifest, spec: SubSpec, phase: str, status: str) -> None:
        current = spec.phases[phase]
        if current == status:
            return
        if current == "complete":
            msg = f"Phase '{phase}' of {spec.id} is already complete and cannot move to '{status}'"
            raise InvalidTransition(msg)
        if not self.strict:
            return
        if phase == "implement" and current == "blocked" and not manifest.scheduled:
            msg = f"Cannot move implement of {spec.id} out of 'blocked' before the meta-spec is scheduled"
            raise InvalidTransition(msg)
        if status not in ("in-progress", "complete"):
            return
        previous = PREVIOUS_PHASE[phase]
        if previous is not None and spec.phases[previous] != "complete":
            msg = f"Cannot set {phase}={status} for {spec.id}: {previous} is '{spec.phases[previous]}', not 'complete'"
            raise InvalidTransition(msg)
        if phase == "implement":
            unfinished = [
                d for d in spec.depends if (dep := manifest.find(d)) is None or dep.phases["implement"] != "complete"
            ]
            if unfinished:
                msg = f"Cannot set implement={status} for {spec.id}: dependencies not implemented: {', '.join(unfinished)}"
                raise InvalidTransition(msg)

    def update_phase(self, sub_spec_id: str, phase: str, status: str) -> SubSpec:
        """Set one phase's status for one sub-spec.

        A completed phase never changes. Phase ordering, the scheduling gate
        on implement, and dependency completion are only checked in strict mode.
        """
        validate_phase(phase)
        validate_status(status)
        with self.storage.lock():
            manifest = self.load()
            spec = self._require_sub_spec(manifest, sub_spec_id)
            self._check_transition(manifest, spec, phase, status)
            old = spec.phases[phase]
            spec.phases[phase] = status
            self._commit("update_phase", manifest, {"id": sub_spec_id, "phase": phase, "old": old, "new": status})
        return spec

    def set_worktree_path(self, sub_spec_id: str, worktree_path: str | Path | None) -> SubSpec:
        """Record (or clear, with None) the worktree path for a sub-spec."""
        value = None if worktree_path is None else str(worktree_path)
        with self.storage.lock():
            manifest = self.load()
            spec = self._require_sub_spec(manifest, sub_spec_id)
            spec.worktree = value
            self._commit("update_worktree", manifest, {"id": sub_spec_id, "worktree": value})
        return spec

    def mark_scheduled(self, schedule: dict[str, Any] | list[Any]) -> Manifest:
        """Store the approved schedule and unblock every blocked implement phase.

        Re-invoking replaces the stored schedule.
        """
        if not isinstance(schedule, dict | list):
            msg = f"Schedule must be a JSON object or array, got {type(schedule).__name__}"
            raise ValueError(msg)
        with self.storage.lock():
            manifest = self.load()
            manifest.meta_spec.scheduled = True
            manifest.schedule = copy.deepcopy(schedule)
            unblocked = []
            for spec in manifest.sub_specs:
                if spec.phases["implement"] == "blocked":
                    spec.phases["implement"] = "pending"
                    unblocked.append(spec.id)
            self._commit("mark_scheduled", manifest, {"unblocked": unblocked})
        return manifest
