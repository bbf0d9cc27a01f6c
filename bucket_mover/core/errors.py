"""
Error Taxonomy

Exceptions raised by the readiness gate, the storage adapters and the
migration engine. Anything deriving from PermanentError is never retried.

Author: Bucket Mover Project
License: MIT
"""

from enum import Enum
from typing import Optional


class BucketMoverError(Exception):
    """Base class for all Bucket Mover errors."""


class PermanentError(BucketMoverError):
    """
    Failure that must not be retried.

    Raising (or wrapping an error in) a PermanentError short-circuits the
    backoff policy on the first occurrence.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConfigError(PermanentError):
    """Configuration is missing or can never work (bad path, missing bucket)."""


class ReadinessFailed(PermanentError):
    """A provider's readiness gate reached the FAILED state."""

    def __init__(self, provider: str, reason: str, cause: Optional[BaseException] = None):
        super().__init__(f"{provider}: {reason}", cause)
        self.provider = provider
        self.reason = reason


class CredentialNotYetAvailable(BucketMoverError):
    """Credentials are not usable yet; the caller should wait and retry."""


class StorageError(BucketMoverError):
    """Failure talking to a backing object store."""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        store: Optional[str] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message)
        self.key = key
        self.store = store
        self.cause = cause


class ListError(StorageError):
    """Enumeration of a bucket failed."""


class ReadError(StorageError):
    """Opening or reading an object failed."""


class WriteError(StorageError):
    """Opening, writing or committing an object failed."""


class DeleteError(StorageError):
    """Removing an object failed."""


class NotFound(StorageError):
    """The object does not exist (possibly deleted concurrently)."""


class MigrationPhase(str, Enum):
    """Step of a migration run at which a failure happened."""
    LIST = "list"
    OPEN_READER = "open_reader"
    OPEN_WRITER = "open_writer"
    COPY = "copy"
    CLOSE_READER = "close_reader"
    CLOSE_WRITER = "close_writer"
    DELETE = "delete"
    CANCELLED = "cancelled"


_PHASE_MESSAGES = {
    MigrationPhase.LIST: "failed to list items in {store} bucket",
    MigrationPhase.OPEN_READER: "failed to get handle for object in source bucket",
    MigrationPhase.OPEN_WRITER: "failed to get handle for object in destination bucket",
    MigrationPhase.COPY: "failed to copy file",
    MigrationPhase.CLOSE_READER: "failed to close source reader",
    MigrationPhase.CLOSE_WRITER: "failed to close destination writer",
    MigrationPhase.DELETE: "failed to remove the old object from source",
    MigrationPhase.CANCELLED: "migration cancelled",
}


class MigrationError(BucketMoverError):
    """
    A migration run was aborted.

    Carries the phase that failed, the key in progress (None for listing or
    cancellation) and the number of keys fully migrated before the abort.
    """

    def __init__(
        self,
        phase: MigrationPhase,
        key: Optional[str] = None,
        migrated: int = 0,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        cause: Optional[BaseException] = None,
        store: Optional[str] = None
    ):
        self.phase = MigrationPhase(phase)
        self.key = key
        self.migrated = migrated
        self.source = source
        self.destination = destination
        self.cause = cause
        self.store = store
        super().__init__(self._render())

    @property
    def reason(self) -> str:
        """Fixed English phrase identifying the failing phase."""
        return _PHASE_MESSAGES[self.phase].format(store=self.store or "source")

    def _render(self) -> str:
        parts = [self.reason]
        if self.key is not None:
            parts.append(f"key={self.key!r}")
        parts.append(f"migrated={self.migrated}")
        return " ".join(parts)
