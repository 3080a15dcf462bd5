"""Tests for branch-name parsing and meta-spec directory discovery."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from metaspec.branches import (
    BRANCH_ENV_VAR,
    find_meta_spec_dir,
    get_current_branch,
    get_repo_root,
    is_sub_spec_branch,
    parse_sub_spec_branch,
)
from metaspec.core import ManifestStore
from metaspec.models import sub_spec_branch

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _make_meta_spec(root: Path, name: str, specs_dir: str = "specs") -> Path:
    d = root / specs_dir / name
    d.mkdir(parents=True)
    ManifestStore.for_directory(d).init_meta_spec(name)
    return d


class TestBranchNames:
    def test_sub_spec_branch_roundtrip(self) -> None:
        branch = sub_spec_branch("001-html-renderer", "002-adapter")
        assert branch == "001-html-renderer-002-adapter"
        assert is_sub_spec_branch(branch)
        assert parse_sub_spec_branch(branch) == ("001-html-renderer", "002-adapter")

    def test_meta_branch_is_not_sub_spec(self) -> None:
        assert not is_sub_spec_branch("001-html-renderer")
        assert parse_sub_spec_branch("001-html-renderer") is None

    def test_sub_spec_is_last_numbered_segment(self) -> None:
        assert parse_sub_spec_branch("001-v2-003-x-004-cli") == ("001-v2-003-x", "004-cli")

    @pytest.mark.parametrize("branch", ["main", "feature/001-x", "1-a-2-b", ""])
    def test_other_branches(self, branch: str) -> None:
        assert not is_sub_spec_branch(branch)


class TestCurrentBranch:
    def test_env_var_wins(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv(BRANCH_ENV_VAR, "001-html-renderer-002-adapter")
        assert get_current_branch(tmp_path) == "001-html-renderer-002-adapter"

    def test_no_git_no_env(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.delenv(BRANCH_ENV_VAR, raising=False)
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path.parent))
        assert get_current_branch(tmp_path) is None

    @requires_git
    def test_reads_git_head(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.delenv(BRANCH_ENV_VAR, raising=False)
        subprocess.run(["git", "init", "-q", "-b", "001-demo", str(tmp_path)], check=True)
        subprocess.run(
            ["git", "-c", "user.name=t", "-c", "user.email=t@example.com", "commit", "-q", "--allow-empty", "-m", "init"],
            cwd=str(tmp_path),
            check=True,
        )
        assert get_current_branch(tmp_path) == "001-demo"
        assert get_repo_root(tmp_path) == tmp_path.resolve()


class TestRepoRoot:
    def test_falls_back_to_specify_parent(self, monkeypatch: pytest.MonkeyPatch, specify_project: Path) -> None:
        monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(specify_project.parent))
        nested = specify_project / "specs" / "deep"
        nested.mkdir()
        assert get_repo_root(nested) == specify_project.resolve()


class TestFindMetaSpecDir:
    def test_sub_spec_branch_exact(self, tmp_path: Path) -> None:
        _make_meta_spec(tmp_path, "001-alpha")
        target = _make_meta_spec(tmp_path, "002-html-renderer")
        assert find_meta_spec_dir(tmp_path, "002-html-renderer-001-parser") == target

    def test_sub_spec_branch_prefix_match(self, tmp_path: Path) -> None:
        target = _make_meta_spec(tmp_path, "002-html-renderer")
        assert find_meta_spec_dir(tmp_path, "002-renamed-001-parser") == target

    def test_meta_branch_prefix(self, tmp_path: Path) -> None:
        _make_meta_spec(tmp_path, "001-alpha")
        target = _make_meta_spec(tmp_path, "003-gamma")
        assert find_meta_spec_dir(tmp_path, "003-gamma") == target

    def test_prefix_dir_without_manifest_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "specs" / "003-plain-spec").mkdir(parents=True)
        first = _make_meta_spec(tmp_path, "001-alpha")
        assert find_meta_spec_dir(tmp_path, "003-plain-spec") == first

    def test_falls_back_to_first_manifest(self, tmp_path: Path) -> None:
        _make_meta_spec(tmp_path, "005-later")
        first = _make_meta_spec(tmp_path, "002-earlier")
        assert find_meta_spec_dir(tmp_path, "main") == first
        assert find_meta_spec_dir(tmp_path, None) == first

    def test_nothing_found(self, tmp_path: Path) -> None:
        assert find_meta_spec_dir(tmp_path, "001-x") is None
        (tmp_path / "specs").mkdir()
        assert find_meta_spec_dir(tmp_path, "001-x") is None

    def test_custom_specs_dir(self, tmp_path: Path) -> None:
        target = _make_meta_spec(tmp_path, "001-alpha", specs_dir="features")
        assert find_meta_spec_dir(tmp_path, "001-alpha", "features") == target
        assert find_meta_spec_dir(tmp_path, "001-alpha") is None
