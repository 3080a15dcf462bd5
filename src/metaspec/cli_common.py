"""Shared CLI helpers.

Provides ``get_store()`` and the error-to-exit-code bridge so that command
modules can reach them without importing ``cli.py``.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import NoReturn

import click

from metaspec.core import ManifestStore, ProjectConfig, find_specify_root, read_config
from metaspec.errors import ManifestError
from metaspec.logging import LOGGER_NAME, setup_logging

_STDERR_HANDLER_NAME = "metaspec-cli-stderr"


class _ClickEchoHandler(logging.Handler):
    """Echo records to whatever stderr click currently sees."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


def find_specify_dir() -> Path | None:
    try:
        return find_specify_root()
    except FileNotFoundError:
        return None


def load_config() -> ProjectConfig:
    return read_config(find_specify_dir())


def configure_logging() -> None:
    """JSONL log under .specify/ (when present) plus warnings on stderr."""
    specify_dir = find_specify_dir()
    if specify_dir is not None:
        setup_logging(specify_dir)
    logger = logging.getLogger(LOGGER_NAME)
    if not any(h.get_name() == _STDERR_HANDLER_NAME for h in logger.handlers):
        handler = _ClickEchoHandler()
        handler.set_name(_STDERR_HANDLER_NAME)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(logging.Formatter("Warning: %(message)s"))
        logger.addHandler(handler)


def get_store(meta_spec_dir: str | Path, *, strict: bool = False) -> ManifestStore:
    config = load_config()
    return ManifestStore.for_directory(meta_spec_dir, config=config, strict=True if strict else None)


def fail(message: str, code: int = 1) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(code)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn ManifestError into a single stderr line and a non-zero exit."""
    try:
        yield
    except ManifestError as exc:
        fail(str(exc))
    except ValueError as exc:
        fail(str(exc))
