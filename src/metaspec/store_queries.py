"""QueryMixin: readiness, completion, and progress queries.

Queries are lock-free. Each call reads one snapshot of the document;
consecutive calls may observe different snapshots if a writer runs in
between. A missing manifest reads as "nothing ready / nothing complete".
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypedDict

from metaspec.models import PHASES, STATUSES, validate_phase
from metaspec.store_base import StoreMixinProtocol

if TYPE_CHECKING:
    from metaspec.models import Manifest, SubSpec

# Phase whose completion gates each phase (implement has extra gates).
PREVIOUS_PHASE: dict[str, str | None] = {
    "specify": None,
    "plan": "specify",
    "tasks": "plan",
    "implement": "tasks",
}


class PhaseProgress(TypedDict):
    pending: int
    in_progress: int
    complete: int
    blocked: int
    total: int


def _is_ready(spec: SubSpec, phase: str, implemented: set[str]) -> bool:
    if spec.phases[phase] != "pending":
        return False
    previous = PREVIOUS_PHASE[phase]
    if previous is not None and spec.phases[previous] != "complete":
        return False
    if phase == "implement":
        return all(dep in implemented for dep in spec.depends)
    return True


def ready_ids(manifest: Manifest, phase: str) -> list[str]:
    """Sub-spec ids ready to start *phase*, in document order."""
    validate_phase(phase)
    if phase == "implement" and not manifest.scheduled:
        return []
    implemented = {s.id for s in manifest.sub_specs if s.phases["implement"] == "complete"}
    return [s.id for s in manifest.sub_specs if _is_ready(s, phase, implemented)]


class QueryMixin(StoreMixinProtocol):
    """Read-only queries over the current manifest snapshot."""

    def get_ready_for_phase(self, phase: str) -> list[str]:
        manifest = self._snapshot()
        if manifest is None:
            validate_phase(phase)
            return []
        return ready_ids(manifest, phase)

    def get_next_for_phase(self, phase: str) -> str | None:
        ready = self.get_ready_for_phase(phase)
        return ready[0] if ready else None

    def all_phase_complete(self, phase: str) -> bool:
        validate_phase(phase)
        manifest = self._snapshot()
        if manifest is None or not manifest.sub_specs:
            return False
        return all(s.phases[phase] == "complete" for s in manifest.sub_specs)

    def progress(self) -> dict[str, PhaseProgress]:
        """Per-phase status counts across all sub-specs."""
        manifest = self._snapshot()
        specs = manifest.sub_specs if manifest is not None else []
        result: dict[str, PhaseProgress] = {}
        for phase in PHASES:
            counts = dict.fromkeys(STATUSES, 0)
            for spec in specs:
                counts[spec.phases[phase]] += 1
            result[phase] = PhaseProgress(
                pending=counts["pending"],
                in_progress=counts["in-progress"],
                complete=counts["complete"],
                blocked=counts["blocked"],
                total=len(specs),
            )
        return result
