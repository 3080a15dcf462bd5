"""Fixtures for CLI interface tests."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from metaspec.cli import cli
from tests._factory import META_ID


@pytest.fixture
def cli_in_project(
    specify_project: Path, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch
) -> tuple[CliRunner, Path]:
    """Run from a .specify/ project root with one initialized meta-spec.

    Returns (runner, meta_spec_dir) where meta_spec_dir is relative to the cwd.
    """
    monkeypatch.chdir(specify_project)
    monkeypatch.delenv("SPECIFY_FEATURE", raising=False)
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(specify_project.parent))
    meta_dir = Path("specs") / META_ID
    result = cli_runner.invoke(cli, ["init", str(meta_dir), "HTML Renderer"])
    assert result.exit_code == 0, result.output
    return cli_runner, meta_dir
