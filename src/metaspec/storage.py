"""Storage backends for the manifest aggregate.

``ManifestStore`` never touches the filesystem itself; it reads and writes
whole documents through a backend and takes the backend's lock around each
read-modify-write.
"""

from __future__ import annotations

import contextlib
import copy
import json
import os
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any, Protocol

from metaspec.errors import MalformedDocument, NotFound
from metaspec.lock import LOCK_DIRNAME, LockSettings, ManifestLock, manifest_lock

MANIFEST_FILENAME = "manifest.json"


def write_atomic(path: Path, content: str) -> None:
    """Write content to path atomically via temp file + os.replace()."""
    tmp = path.with_suffix(path.suffix + f".{os.getpid()}.{threading.get_ident()}.tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise


class StorageBackend(Protocol):
    """Whole-document persistence plus the lock that serializes writers."""

    @property
    def location(self) -> str: ...

    def exists(self) -> bool: ...

    def read(self) -> dict[str, Any]: ...

    def write(self, data: dict[str, Any]) -> None: ...

    def lock(self) -> contextlib.AbstractContextManager[Any]: ...

    def create_location(self) -> None: ...


class FileStorage:
    """``manifest.json`` on disk, guarded by the mkdir lock beside it."""

    def __init__(self, manifest_path: str | Path, lock_settings: LockSettings | None = None) -> None:
        self.path = Path(manifest_path)
        self.lock_settings = lock_settings or LockSettings()

    @property
    def location(self) -> str:
        return str(self.path)

    @property
    def lockdir(self) -> Path:
        return self.path.parent / LOCK_DIRNAME

    def exists(self) -> bool:
        return self.path.is_file()

    def read(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            msg = f"Manifest not found: {self.path}"
            raise NotFound(msg) from None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            msg = f"Manifest {self.path} is not valid JSON: {exc}"
            raise MalformedDocument(msg) from exc
        if not isinstance(data, dict):
            msg = f"Manifest {self.path} root must be an object, got {type(data).__name__}"
            raise MalformedDocument(msg)
        return data

    def write(self, data: dict[str, Any]) -> None:
        write_atomic(self.path, json.dumps(data, indent=2) + "\n")

    def create_location(self) -> None:
        """Create the meta-spec directory. Only initialization calls this."""
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def lock(self) -> ManifestLock:
        if not self.path.parent.is_dir():
            msg = f"Manifest directory not found: {self.path.parent}"
            raise NotFound(msg)
        return manifest_lock(self.path.parent, self.lock_settings)


class MemoryStorage:
    """In-process document, deep-copied on every read and write."""

    def __init__(self, data: dict[str, Any] | None = None, *, name: str = "memory") -> None:
        self._data = copy.deepcopy(data) if data is not None else None
        self._lock = threading.Lock()
        self._name = name

    @property
    def location(self) -> str:
        return f"<{self._name}>"

    def exists(self) -> bool:
        return self._data is not None

    def read(self) -> dict[str, Any]:
        if self._data is None:
            msg = f"Manifest not found: {self.location}"
            raise NotFound(msg)
        return copy.deepcopy(self._data)

    def write(self, data: dict[str, Any]) -> None:
        # Round-trip through JSON so non-serializable values fail the same way as on disk.
        self._data = json.loads(json.dumps(data))

    def create_location(self) -> None:
        pass

    @contextlib.contextmanager
    def lock(self) -> Iterator[None]:
        with self._lock:
            yield
