"""Advisory manifest lock built on atomic directory creation.

The marker is a ``manifest.lock/`` directory next to ``manifest.json``.
``mkdir`` either creates it or fails because it already exists; that
failure is the only mutual-exclusion primitive, so it must never be
replaced by a check-then-create sequence. The marker holds three small
files (``pid``, ``timestamp``, ``command``) describing the holder.

Acquisition polls with a fixed delay. When the attempt budget runs out the
marker's age is checked: a marker older than ``stale_after`` is removed
once and a fresh polling round starts; otherwise ``LockTimeout`` is raised.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
import threading
import time
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any

from metaspec.errors import LockOwnershipError, LockTimeout
from metaspec.models import now_iso

logger = logging.getLogger(__name__)

LOCK_DIRNAME = "manifest.lock"
PID_FILENAME = "pid"
TIMESTAMP_FILENAME = "timestamp"
COMMAND_FILENAME = "command"

# Upper bound on polling rounds per acquisition (initial + stale break + vanished marker).
_MAX_ROUNDS = 3


@dataclass(frozen=True)
class LockSettings:
    max_attempts: int = 100
    retry_delay: float = 0.1
    stale_after: float = 300.0
    strict_release: bool = False

    @classmethod
    def from_config(cls, data: dict[str, Any] | None) -> LockSettings:
        """Build settings from a config mapping, ignoring bad or unknown values."""
        defaults = cls()
        if not data:
            return defaults
        values: dict[str, Any] = {}
        for name, kind in (("max_attempts", int), ("retry_delay", (int, float)), ("stale_after", (int, float))):
            raw = data.get(name)
            if raw is None:
                continue
            if isinstance(raw, bool) or not isinstance(raw, kind) or raw <= 0:
                logger.warning("Ignoring invalid lock setting %s=%r", name, raw)
                continue
            values[name] = raw
        if isinstance(data.get("strict_release"), bool):
            values["strict_release"] = data["strict_release"]
        return replace(defaults, **values)


@dataclass(frozen=True)
class LockInfo:
    """What the marker says about its holder. Fields are None when unreadable."""

    pid: str | None
    timestamp: str | None
    command: str | None
    age_seconds: float | None


def _read_marker_file(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8").strip() or None
    except OSError:
        return None


def _parse_timestamp(value: str) -> float | None:
    try:
        parsed = datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
    except ValueError:
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def read_lock_info(lockdir: Path, *, now: float | None = None) -> LockInfo | None:
    """Inspect a lock marker. Returns None if no marker exists.

    The age comes from the recorded timestamp; if that file is missing or
    unparseable (holder died between mkdir and writing metadata) the
    directory's mtime is used instead.
    """
    if not lockdir.is_dir():
        return None
    current = time.time() if now is None else now
    timestamp = _read_marker_file(lockdir / TIMESTAMP_FILENAME)
    started = _parse_timestamp(timestamp) if timestamp else None
    if started is None:
        try:
            started = lockdir.stat().st_mtime
        except OSError:
            started = None
    return LockInfo(
        pid=_read_marker_file(lockdir / PID_FILENAME),
        timestamp=timestamp,
        command=_read_marker_file(lockdir / COMMAND_FILENAME),
        age_seconds=None if started is None else max(0.0, current - started),
    )


def force_unlock(lockdir: Path) -> bool:
    """Remove a lock marker regardless of owner. Returns True if one existed."""
    if not lockdir.exists():
        return False
    shutil.rmtree(lockdir, ignore_errors=True)
    logger.warning("Force-removed manifest lock %s", lockdir)
    return True


class ManifestLock:
    """Scoped mkdir lock. Use as a context manager; release runs on every exit path."""

    def __init__(self, lockdir: Path, settings: LockSettings | None = None) -> None:
        self.lockdir = Path(lockdir)
        self.settings = settings or LockSettings()
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> ManifestLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        # Never replace an exception already leaving the guarded block.
        self.release(strict=exc is None)

    def _try_create(self) -> bool:
        try:
            self.lockdir.mkdir()
        except FileExistsError:
            return False
        return True

    def _write_metadata(self) -> None:
        try:
            (self.lockdir / PID_FILENAME).write_text(f"{os.getpid()}\n", encoding="utf-8")
            (self.lockdir / TIMESTAMP_FILENAME).write_text(f"{now_iso()}\n", encoding="utf-8")
            (self.lockdir / COMMAND_FILENAME).write_text(" ".join(sys.argv) + "\n", encoding="utf-8")
        except OSError:
            shutil.rmtree(self.lockdir, ignore_errors=True)
            raise

    def _poll(self) -> bool:
        for attempt in range(self.settings.max_attempts):
            if self._try_create():
                return True
            if attempt == 0:
                logger.debug("Manifest lock %s busy, waiting", self.lockdir)
            time.sleep(self.settings.retry_delay)
        # Marker may have vanished during the final sleep.
        return self._try_create()

    def _break_stale(self, seen: LockInfo) -> None:
        """Move the stale marker aside, then delete it.

        ``os.rename`` is atomic, so when several waiters race only one of them
        moves a given marker. If the marker moved aside is not the one judged
        stale (its holder changed in between), it is put back.
        """
        graveyard = self.lockdir.with_name(f"{self.lockdir.name}.stale.{os.getpid()}.{threading.get_ident()}")
        try:
            os.rename(self.lockdir, graveyard)
        except OSError:
            # Another waiter got there first.
            return
        moved = read_lock_info(graveyard)
        if moved is not None and (moved.pid, moved.timestamp) != (seen.pid, seen.timestamp):
            try:
                os.rename(graveyard, self.lockdir)
            except OSError:
                logger.warning("Could not restore live lock marker %s (left at %s)", self.lockdir, graveyard)
            return
        shutil.rmtree(graveyard, ignore_errors=True)

    def acquire(self) -> None:
        if self._held:
            msg = f"Lock {self.lockdir} is already held by this ManifestLock"
            raise RuntimeError(msg)

        stale_broken = False
        rounds = 0
        while True:
            rounds += 1
            if self._poll():
                self._write_metadata()
                self._held = True
                return

            info = read_lock_info(self.lockdir)
            if info is None:
                if rounds < _MAX_ROUNDS:
                    continue
                info = LockInfo(pid=None, timestamp=None, command=None, age_seconds=None)
            if not stale_broken and info.age_seconds is not None and info.age_seconds > self.settings.stale_after:
                logger.warning(
                    "Stale lock detected (age: %ds, pid: %s), forcing removal",
                    int(info.age_seconds),
                    info.pid or "unknown",
                )
                self._break_stale(info)
                stale_broken = True
                continue

            age = f"{int(info.age_seconds)}s" if info.age_seconds is not None else "unknown"
            msg = (
                f"Could not acquire manifest lock {self.lockdir} after {self.settings.max_attempts} attempts. "
                f"Held by PID {info.pid or 'unknown'} since {info.timestamp or 'unknown'} (age {age})"
            )
            raise LockTimeout(msg, holder_pid=info.pid, age_seconds=info.age_seconds)

    def release(self, *, strict: bool = True) -> None:
        """Remove the marker.

        With ``strict_release`` set, a marker now owned by another PID is left
        in place. It raises ``LockOwnershipError`` when *strict* is true and
        only logs an error otherwise. Work done while holding the lock has
        already happened either way.
        """
        if not self._held:
            return
        self._held = False
        if not self.lockdir.exists():
            logger.warning("Manifest lock %s vanished before release", self.lockdir)
            return

        lock_pid = _read_marker_file(self.lockdir / PID_FILENAME)
        our_pid = str(os.getpid())
        if lock_pid != our_pid:
            if self.settings.strict_release:
                msg = (
                    f"Refusing to release lock {self.lockdir} owned by PID {lock_pid or 'unknown'} "
                    f"(our PID: {our_pid}); changes made while it was held were already written"
                )
                if strict:
                    raise LockOwnershipError(msg)
                logger.error(msg)
                return
            logger.warning(
                "Releasing lock we don't own (our PID: %s, lock PID: %s)",
                our_pid,
                lock_pid or "unknown",
            )
        shutil.rmtree(self.lockdir, ignore_errors=True)


def manifest_lock(meta_spec_dir: Path, settings: LockSettings | None = None) -> ManifestLock:
    """Lock guarding ``<meta_spec_dir>/manifest.json``."""
    return ManifestLock(Path(meta_spec_dir) / LOCK_DIRNAME, settings)
