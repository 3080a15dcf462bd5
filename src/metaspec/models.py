"""Data model for the meta-spec manifest.

The dataclasses here are the only place the JSON wire shape is read or
produced. ``Manifest.from_dict`` validates structure and raises
``MalformedDocument``; ``to_dict`` emits the camelCase layout other tooling
reads from ``manifest.json``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, TypedDict

from metaspec.errors import InvalidId, InvalidPhase, InvalidStatus, MalformedDocument

# ---------------------------------------------------------------------------
# Constrained-string Literal types
# ---------------------------------------------------------------------------

Phase = Literal["specify", "plan", "tasks", "implement"]
Status = Literal["pending", "in-progress", "complete", "blocked"]

PHASES: tuple[Phase, ...] = ("specify", "plan", "tasks", "implement")
STATUSES: tuple[Status, ...] = ("pending", "in-progress", "complete", "blocked")
VALID_PHASES: frozenset[str] = frozenset(PHASES)
VALID_STATUSES: frozenset[str] = frozenset(STATUSES)

INITIAL_PHASES: dict[Phase, Status] = {
    "specify": "pending",
    "plan": "pending",
    "tasks": "pending",
    "implement": "blocked",
}

MANIFEST_VERSION = "1.0.0"
DEFAULT_USER_STORY_FILE = "user-story.md"
DEFAULT_BREAKDOWN_FILE = "breakdown.md"

SUB_SPEC_ID_PATTERN = re.compile(r"^[0-9]{3}-[a-z0-9][a-z0-9-]*$")


def now_iso() -> str:
    """UTC timestamp in the second-precision ``Z`` form the manifest uses."""
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def validate_phase(phase: str) -> Phase:
    if not isinstance(phase, str) or phase not in VALID_PHASES:
        msg = f"Invalid phase '{phase}'. Must be one of: {', '.join(PHASES)}"
        raise InvalidPhase(msg)
    return phase  # type: ignore[return-value]


def validate_status(status: str) -> Status:
    if not isinstance(status, str) or status not in VALID_STATUSES:
        msg = f"Invalid status '{status}'. Must be one of: {', '.join(STATUSES)}"
        raise InvalidStatus(msg)
    return status  # type: ignore[return-value]


def validate_sub_spec_id(sub_spec_id: str) -> str:
    if not isinstance(sub_spec_id, str) or not SUB_SPEC_ID_PATTERN.match(sub_spec_id):
        msg = f"Invalid sub-spec id '{sub_spec_id}'. Expected NNN-name (e.g. 001-parser)"
        raise InvalidId(msg)
    return sub_spec_id


def sub_spec_branch(meta_spec_id: str, sub_spec_id: str) -> str:
    """Git branch for a sub-spec: ``<meta-spec-id>-<sub-spec-id>``."""
    return f"{meta_spec_id}-{sub_spec_id}"


# ---------------------------------------------------------------------------
# Wire shapes
# ---------------------------------------------------------------------------


class MetaSpecDict(TypedDict):
    id: str
    title: str
    userStoryFile: str
    breakdownFile: str
    scheduled: bool
    createdAt: str


class SubSpecDict(TypedDict):
    id: str
    title: str
    depends: list[str]
    phases: dict[str, str]
    branch: str
    worktree: str | None
    createdAt: str


class ManifestDict(TypedDict):
    version: str
    metaSpec: MetaSpecDict
    subSpecs: list[SubSpecDict]
    schedule: Any


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _require(data: dict[str, Any], key: str, kind: type, where: str) -> Any:
    if key not in data:
        msg = f"{where}: missing required key '{key}'"
        raise MalformedDocument(msg)
    value = data[key]
    if not isinstance(value, kind):
        msg = f"{where}: '{key}' has wrong type {type(value).__name__}"
        raise MalformedDocument(msg)
    return value


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class MetaSpecInfo:
    id: str
    title: str
    user_story_file: str = DEFAULT_USER_STORY_FILE
    breakdown_file: str = DEFAULT_BREAKDOWN_FILE
    scheduled: bool = False
    created_at: str = ""

    def to_dict(self) -> MetaSpecDict:
        return {
            "id": self.id,
            "title": self.title,
            "userStoryFile": self.user_story_file,
            "breakdownFile": self.breakdown_file,
            "scheduled": self.scheduled,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> MetaSpecInfo:
        if not isinstance(data, dict):
            msg = "metaSpec must be an object"
            raise MalformedDocument(msg)
        return cls(
            id=_require(data, "id", str, "metaSpec"),
            title=_require(data, "title", str, "metaSpec"),
            user_story_file=data.get("userStoryFile", DEFAULT_USER_STORY_FILE),
            breakdown_file=data.get("breakdownFile", DEFAULT_BREAKDOWN_FILE),
            scheduled=_require(data, "scheduled", bool, "metaSpec"),
            created_at=data.get("createdAt", ""),
        )


@dataclass
class SubSpec:
    id: str
    title: str
    depends: list[str] = field(default_factory=list)
    phases: dict[str, str] = field(default_factory=lambda: dict(INITIAL_PHASES))
    branch: str = ""
    worktree: str | None = None
    created_at: str = ""

    def to_dict(self) -> SubSpecDict:
        return {
            "id": self.id,
            "title": self.title,
            "depends": list(self.depends),
            "phases": {p: self.phases[p] for p in PHASES},
            "branch": self.branch,
            "worktree": self.worktree,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> SubSpec:
        if not isinstance(data, dict):
            msg = "subSpecs entries must be objects"
            raise MalformedDocument(msg)
        sub_id = _require(data, "id", str, "subSpec")
        where = f"subSpec {sub_id}"
        depends = _require(data, "depends", list, where)
        if not all(isinstance(d, str) for d in depends):
            msg = f"{where}: 'depends' must be a list of strings"
            raise MalformedDocument(msg)
        raw_phases = _require(data, "phases", dict, where)
        phases: dict[str, str] = {}
        for phase in PHASES:
            status = raw_phases.get(phase)
            if status not in VALID_STATUSES:
                msg = f"{where}: phase '{phase}' has invalid status {status!r}"
                raise MalformedDocument(msg)
            phases[phase] = status
        worktree = data.get("worktree")
        if worktree is not None and not isinstance(worktree, str):
            msg = f"{where}: 'worktree' must be a string or null"
            raise MalformedDocument(msg)
        return cls(
            id=sub_id,
            title=_require(data, "title", str, where),
            depends=list(depends),
            phases=phases,
            branch=data.get("branch", ""),
            worktree=worktree,
            created_at=data.get("createdAt", ""),
        )


@dataclass
class Manifest:
    meta_spec: MetaSpecInfo
    sub_specs: list[SubSpec] = field(default_factory=list)
    schedule: Any = None
    version: str = MANIFEST_VERSION

    @property
    def scheduled(self) -> bool:
        return self.meta_spec.scheduled

    def find(self, sub_spec_id: str) -> SubSpec | None:
        for spec in self.sub_specs:
            if spec.id == sub_spec_id:
                return spec
        return None

    def ids(self) -> list[str]:
        return [s.id for s in self.sub_specs]

    def to_dict(self) -> ManifestDict:
        return {
            "version": self.version,
            "metaSpec": self.meta_spec.to_dict(),
            "subSpecs": [s.to_dict() for s in self.sub_specs],
            "schedule": self.schedule,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Manifest:
        if not isinstance(data, dict):
            msg = f"Manifest root must be an object, got {type(data).__name__}"
            raise MalformedDocument(msg)
        meta = MetaSpecInfo.from_dict(_require(data, "metaSpec", dict, "manifest"))
        raw_subs = _require(data, "subSpecs", list, "manifest")
        subs = [SubSpec.from_dict(s) for s in raw_subs]
        seen: set[str] = set()
        for s in subs:
            if s.id in seen:
                msg = f"manifest: sub-spec id '{s.id}' appears more than once"
                raise MalformedDocument(msg)
            seen.add(s.id)
        return cls(
            meta_spec=meta,
            sub_specs=subs,
            schedule=data.get("schedule"),
            version=data.get("version", MANIFEST_VERSION),
        )
