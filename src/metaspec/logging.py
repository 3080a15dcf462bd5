"""JSONL audit log for manifest changes and MCP tool calls.

Every process that touches a project's manifests (CLI invocations, the MCP
server, parallel agents) appends to the same ``.specify/metaspec.log``,
rotated at 5MB with 3 backups. Records emitted by the package:

    manifest_update   one per committed mutation (``metaspec.core``);
                      ``tool`` is the operation, ``args`` its inputs
    tool_call         one per MCP request, with ``duration_ms``
    tool_error        an MCP handler raised; carries ``exception``
    mcp_server_start  MCP server bound to a project

Each line carries ``pid`` so interleaved writers can be told apart.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "metaspec"
_LOG_FILENAME = "metaspec.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# LogRecord attribute (set via ``extra=``) -> JSON key.
_EXTRA_FIELDS = (
    ("tool", "tool"),
    ("args_data", "args"),
    ("duration_ms", "duration_ms"),
)


class _JsonFormatter(logging.Formatter):
    """One JSON object per record, UTC timestamps in the manifest's ``Z`` form."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_FIELDS:
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def setup_logging(specify_dir: Path) -> logging.Logger:
    """Attach the rotating JSONL handler for ``<specify_dir>/metaspec.log``.

    Returns the ``metaspec`` logger, whose children (``metaspec.core``,
    ``metaspec.lock``) propagate into it. Safe to call from several threads.
    One project log is active per process: a call for another directory
    closes the previous file handler.
    """
    logger = logging.getLogger(LOGGER_NAME)
    log_path = specify_dir / _LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        for h in logger.handlers[:]:
            if not isinstance(h, RotatingFileHandler):
                continue
            if h.baseFilename == target_filename:
                return logger
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger
