"""metaspec: lock-guarded manifest store for meta-spec/sub-spec workflows."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("metaspec")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

from metaspec.core import ManifestStore
from metaspec.models import PHASES, STATUSES, Manifest, MetaSpecInfo, SubSpec
from metaspec.storage import FileStorage, MemoryStorage

__all__ = [
    "PHASES",
    "STATUSES",
    "FileStorage",
    "Manifest",
    "ManifestStore",
    "MemoryStorage",
    "MetaSpecInfo",
    "SubSpec",
    "__version__",
]
