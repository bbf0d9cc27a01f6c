"""
Object Store Interface

Capability interface implemented once per storage provider. Adapters hide
provider-specific addressing and authentication and translate SDK failures
into the error taxonomy in ``core.errors``.

Author: Bucket Mover Project
License: MIT
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Iterator, List


class ObjectWriter(ABC):
    """
    Byte sink for one object.

    ``close()`` commits the object; ``abort()`` discards everything written
    so far. Leaving a ``with`` block through an exception aborts.
    """

    def __init__(self, key: str):
        self.key = key
        self.closed = False

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Buffer or upload ``data``."""

    @abstractmethod
    def _commit(self) -> None:
        """Make the written bytes durable."""

    def _discard(self) -> None:
        """Drop any buffered or partially uploaded data."""

    def writable(self) -> bool:
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._commit()

    def abort(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._discard()

    def __enter__(self) -> "ObjectWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


@dataclass(frozen=True)
class ObjectRecord:
    """A single object key as enumerated from one store."""
    key: str
    store: "ObjectStore"

    def __repr__(self) -> str:
        return f"ObjectRecord(key={self.key!r}, store={self.store.name!r})"


class ObjectStore(ABC):
    """
    Handle on one bucket of one provider.

    Implementations must tolerate ``list()`` being called at any time,
    including while a migration is writing to or deleting from the bucket.
    """

    def __init__(self, name: str, bucket_name: str):
        self.name = name
        self.bucket_name = bucket_name

    @abstractmethod
    def list(self) -> Iterator[ObjectRecord]:
        """
        Lazily enumerate the bucket in the backing store's order.

        Raises:
            ListError: From the iterator if the backing service fails
        """

    def list_keys(self) -> List[str]:
        """Materialize the full listing as a list of keys."""
        return [record.key for record in self.list()]

    @abstractmethod
    def open_reader(self, key: str) -> BinaryIO:
        """
        Open a readable byte stream for ``key``.

        Raises:
            NotFound: If the key does not exist
            ReadError: On any other failure
        """

    @abstractmethod
    def open_writer(self, key: str) -> ObjectWriter:
        """
        Open a writable byte sink for ``key``.

        The object is not durable until the sink is closed; an aborted sink
        never commits.

        Raises:
            WriteError: On failure to open, write or commit
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """
        Remove ``key`` from the bucket.

        Raises:
            NotFound: If the key is already gone
            DeleteError: On any other failure
        """

    @abstractmethod
    def check_reachable(self) -> bool:
        """
        Confirm the bucket is reachable with the current credentials.

        Raises:
            CredentialNotYetAvailable: Credentials are not usable yet
            ConfigError: The bucket can never be reached as configured
        """

    def close(self) -> None:
        """Release the underlying client."""

    def __enter__(self) -> "ObjectStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, bucket={self.bucket_name!r})"
