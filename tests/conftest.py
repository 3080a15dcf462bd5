"""Shared pytest fixtures for metaspec tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from pathlib import Path

import pytest
from click.testing import CliRunner

from metaspec.core import SPECIFY_DIR_NAME, ManifestStore, write_config
from metaspec.logging import LOGGER_NAME
from metaspec.storage import FileStorage, MemoryStorage
from tests._factory import META_ID


@pytest.fixture(autouse=True)
def _reset_metaspec_logger() -> Generator[None, None, None]:
    """Drop handlers added by setup_logging / the CLI so tests stay independent."""
    logger = logging.getLogger(LOGGER_NAME)
    before = list(logger.handlers)
    level = logger.level
    yield
    for handler in logger.handlers[:]:
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)


@pytest.fixture
def meta_dir(tmp_path: Path) -> Path:
    """Meta-spec directory (not yet holding a manifest)."""
    d = tmp_path / "specs" / META_ID
    d.mkdir(parents=True)
    return d


@pytest.fixture
def store(meta_dir: Path) -> ManifestStore:
    """File-backed store with an initialized, empty manifest."""
    s = ManifestStore.for_directory(meta_dir)
    s.init_meta_spec("HTML Renderer")
    return s


@pytest.fixture
def strict_store(meta_dir: Path) -> ManifestStore:
    s = ManifestStore(FileStorage(meta_dir / "manifest.json"), meta_spec_id=META_ID, strict=True)
    s.init_meta_spec("HTML Renderer")
    return s


@pytest.fixture
def mem_store() -> ManifestStore:
    """In-memory store with an initialized, empty manifest."""
    s = ManifestStore(MemoryStorage(), meta_spec_id=META_ID)
    s.init_meta_spec("HTML Renderer")
    return s


@pytest.fixture
def populated_store(store: ManifestStore) -> ManifestStore:
    """Store with a small dependency graph.

    Creates:
    - 001-parser (no deps)
    - 002-adapter depends on 001-parser
    - 003-cli depends on 001-parser and 002-adapter
    """
    store.add_sub_spec("001-parser", "Parser")
    store.add_sub_spec("002-adapter", "Adapter", ["001-parser"])
    store.add_sub_spec("003-cli", "CLI", ["001-parser", "002-adapter"])
    return store


@pytest.fixture
def specify_project(tmp_path: Path) -> Path:
    """A tmp directory set up as a project root (.specify/ with config).

    Returns the project root (parent of .specify/).
    """
    specify_dir = tmp_path / SPECIFY_DIR_NAME
    specify_dir.mkdir()
    write_config(specify_dir, {"specs_dir": "specs", "strict": False, "lock": {"max_attempts": 20}})
    (tmp_path / "specs").mkdir()
    return tmp_path


@pytest.fixture
def cli_runner() -> CliRunner:
    return CliRunner()

