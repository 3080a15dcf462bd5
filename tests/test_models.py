"""Tests for the manifest data model and its JSON wire shape."""

from __future__ import annotations

import re
from typing import Any

import pytest

from metaspec.errors import InvalidId, InvalidPhase, InvalidStatus, MalformedDocument
from metaspec.models import (
    INITIAL_PHASES,
    MANIFEST_VERSION,
    PHASES,
    Manifest,
    MetaSpecInfo,
    SubSpec,
    now_iso,
    sub_spec_branch,
    validate_phase,
    validate_status,
    validate_sub_spec_id,
)


def _doc(**overrides: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "version": "1.0.0",
        "metaSpec": {
            "id": "001-renderer",
            "title": "Renderer",
            "userStoryFile": "user-story.md",
            "breakdownFile": "breakdown.md",
            "scheduled": False,
            "createdAt": "2025-01-01T00:00:00Z",
        },
        "subSpecs": [
            {
                "id": "001-parser",
                "title": "Parser",
                "depends": [],
                "phases": dict(INITIAL_PHASES),
                "branch": "001-renderer-001-parser",
                "worktree": None,
                "createdAt": "2025-01-01T00:00:01Z",
            }
        ],
        "schedule": None,
    }
    doc.update(overrides)
    return doc


class TestValidators:
    @pytest.mark.parametrize("phase", PHASES)
    def test_valid_phases(self, phase: str) -> None:
        assert validate_phase(phase) == phase

    def test_invalid_phase_lists_allowed_values(self) -> None:
        with pytest.raises(InvalidPhase, match="specify, plan, tasks, implement"):
            validate_phase("review")

    def test_invalid_phase_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            validate_phase("")

    @pytest.mark.parametrize("value", [["plan"], {"phase": "plan"}, 3, None])
    def test_non_string_phase_and_status_rejected(self, value: Any) -> None:
        with pytest.raises(InvalidPhase):
            validate_phase(value)
        with pytest.raises(InvalidStatus):
            validate_status(value)

    def test_invalid_status_lists_allowed_values(self) -> None:
        with pytest.raises(InvalidStatus, match="pending, in-progress, complete, blocked"):
            validate_status("done")

    @pytest.mark.parametrize("sub_id", ["001-parser", "042-html-adapter", "999-x1"])
    def test_valid_sub_spec_ids(self, sub_id: str) -> None:
        assert validate_sub_spec_id(sub_id) == sub_id

    @pytest.mark.parametrize("sub_id", ["parser", "1-parser", "001_parser", "001-", "001-Parser", "001--x", ""])
    def test_invalid_sub_spec_ids(self, sub_id: str) -> None:
        with pytest.raises(InvalidId):
            validate_sub_spec_id(sub_id)

    def test_sub_spec_branch(self) -> None:
        assert sub_spec_branch("001-html-renderer", "002-adapter") == "001-html-renderer-002-adapter"

    def test_now_iso_format(self) -> None:
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z", now_iso())


class TestWireShape:
    def test_parse_full_document(self) -> None:
        m = Manifest.from_dict(_doc())
        assert m.version == "1.0.0"
        assert m.meta_spec.id == "001-renderer"
        assert m.scheduled is False
        assert m.ids() == ["001-parser"]
        spec = m.find("001-parser")
        assert spec is not None
        assert spec.phases == INITIAL_PHASES
        assert spec.worktree is None

    def test_to_dict_uses_camel_case_keys(self) -> None:
        out = Manifest.from_dict(_doc()).to_dict()
        assert set(out) == {"version", "metaSpec", "subSpecs", "schedule"}
        assert set(out["metaSpec"]) == {"id", "title", "userStoryFile", "breakdownFile", "scheduled", "createdAt"}
        assert set(out["subSpecs"][0]) == {"id", "title", "depends", "phases", "branch", "worktree", "createdAt"}

    def test_phases_emitted_in_canonical_order(self) -> None:
        spec = SubSpec(id="001-a", title="A", phases={"implement": "blocked", "tasks": "pending", "plan": "pending", "specify": "pending"})
        assert list(spec.to_dict()["phases"]) == list(PHASES)

    def test_schedule_preserved_verbatim(self) -> None:
        schedule = {"waves": [["001-parser"], ["002-adapter", "003-cli"]], "note": "approved"}
        m = Manifest.from_dict(_doc(schedule=schedule))
        assert m.to_dict()["schedule"] == schedule

    def test_missing_version_defaults(self) -> None:
        doc = _doc()
        del doc["version"]
        assert Manifest.from_dict(doc).version == MANIFEST_VERSION

    def test_optional_meta_fields_default(self) -> None:
        info = MetaSpecInfo.from_dict({"id": "001-x", "title": "X", "scheduled": True})
        assert info.user_story_file == "user-story.md"
        assert info.breakdown_file == "breakdown.md"
        assert info.scheduled is True

    def test_new_sub_spec_starts_with_initial_phases(self) -> None:
        spec = SubSpec(id="001-a", title="A")
        assert spec.phases == INITIAL_PHASES
        assert spec.phases is not INITIAL_PHASES


class TestMalformed:
    def test_root_not_object(self) -> None:
        with pytest.raises(MalformedDocument, match="root must be an object"):
            Manifest.from_dict([])

    def test_missing_meta_spec(self) -> None:
        doc = _doc()
        del doc["metaSpec"]
        with pytest.raises(MalformedDocument, match="metaSpec"):
            Manifest.from_dict(doc)

    def test_sub_specs_wrong_type(self) -> None:
        with pytest.raises(MalformedDocument, match="subSpecs"):
            Manifest.from_dict(_doc(subSpecs={}))

    def test_scheduled_must_be_bool(self) -> None:
        doc = _doc()
        doc["metaSpec"]["scheduled"] = "yes"
        with pytest.raises(MalformedDocument, match="scheduled"):
            Manifest.from_dict(doc)

    def test_unknown_status_rejected(self) -> None:
        doc = _doc()
        doc["subSpecs"][0]["phases"]["plan"] = "done"
        with pytest.raises(MalformedDocument, match="plan"):
            Manifest.from_dict(doc)

    def test_missing_phase_rejected(self) -> None:
        doc = _doc()
        del doc["subSpecs"][0]["phases"]["implement"]
        with pytest.raises(MalformedDocument, match="implement"):
            Manifest.from_dict(doc)

    def test_depends_must_be_strings(self) -> None:
        doc = _doc()
        doc["subSpecs"][0]["depends"] = [1]
        with pytest.raises(MalformedDocument, match="depends"):
            Manifest.from_dict(doc)

    def test_duplicate_ids_rejected(self) -> None:
        doc = _doc()
        doc["subSpecs"].append(dict(doc["subSpecs"][0]))
        with pytest.raises(MalformedDocument, match="more than once"):
            Manifest.from_dict(doc)

    def test_worktree_must_be_string_or_null(self) -> None:
        doc = _doc()
        doc["subSpecs"][0]["worktree"] = 5
        with pytest.raises(MalformedDocument, match="worktree"):
            Manifest.from_dict(doc)
