"""Exception hierarchy for manifest operations.

Every error carries a stable ``code`` that the CLI and MCP layers surface
alongside the message. Subclasses also inherit the closest builtin so
callers that only know about ``ValueError``/``LookupError`` still work.
"""

from __future__ import annotations


class ManifestError(Exception):
    """Base class for all manifest errors."""

    code = "manifest_error"


class LockTimeout(ManifestError, TimeoutError):
    """The manifest lock could not be acquired within the retry budget."""

    code = "lock_timeout"

    def __init__(self, message: str, *, holder_pid: str | None = None, age_seconds: float | None = None) -> None:
        super().__init__(message)
        self.holder_pid = holder_pid
        self.age_seconds = age_seconds


class LockOwnershipError(ManifestError):
    """Release attempted on a lock marker recorded for another process."""

    code = "lock_not_owned"


class NotFound(ManifestError, LookupError):
    code = "not_found"


class AlreadyExists(ManifestError, FileExistsError):
    code = "already_exists"


class DuplicateId(ManifestError, ValueError):
    code = "duplicate_id"


class InvalidId(ManifestError, ValueError):
    code = "invalid_id"


class InvalidPhase(ManifestError, ValueError):
    code = "invalid_phase"


class InvalidStatus(ManifestError, ValueError):
    code = "invalid_status"


class InvalidTransition(ManifestError, ValueError):
    code = "invalid_transition"


class MalformedDocument(ManifestError, ValueError):
    """On-disk manifest failed to parse. Never repaired automatically."""

    code = "malformed_document"
