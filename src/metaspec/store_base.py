"""Shared Protocol for ManifestStore mixins."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from metaspec.models import Manifest
    from metaspec.storage import StorageBackend


class StoreMixinProtocol(Protocol):
    """Attributes and methods mixins access via self.

    Actual implementations are provided by ManifestStore at composition time.
    """

    storage: StorageBackend
    strict: bool

    def _snapshot(self) -> Manifest | None: ...
