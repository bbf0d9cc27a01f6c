"""
In-Memory Object Store

Dict-backed store used for local runs (``provider: memory``) and by the
test-suite. Supports injecting faults per operation and key.

Author: Bucket Mover Project
License: MIT
"""

import io
import threading
from typing import Dict, Iterable, Iterator, Optional, Tuple

from .base import ObjectRecord, ObjectStore, ObjectWriter
from ..core.errors import (
    DeleteError,
    ListError,
    NotFound,
    ReadError,
    StorageError,
    WriteError,
)

# Operations that accept injected faults
OPERATIONS = ("list", "open_reader", "open_writer", "write", "commit", "delete", "check")

_DEFAULT_ERRORS = {
    "list": ListError,
    "open_reader": ReadError,
    "open_writer": WriteError,
    "write": WriteError,
    "commit": WriteError,
    "delete": DeleteError,
}


class _MemoryWriter(ObjectWriter):
    """Buffers writes and publishes the object on commit."""

    def __init__(self, store: "MemoryObjectStore", key: str):
        super().__init__(key)
        self._store = store
        self._buffer = io.BytesIO()

    def write(self, data: bytes) -> int:
        self._store._maybe_fail("write", self.key)
        return self._buffer.write(data)

    def _commit(self) -> None:
        self._store._maybe_fail("commit", self.key)
        with self._store._lock:
            self._store._objects[self.key] = self._buffer.getvalue()

    def _discard(self) -> None:
        self._buffer = io.BytesIO()


class MemoryObjectStore(ObjectStore):
    """Thread-safe in-memory bucket."""

    def __init__(
        self,
        name: str = "memory",
        bucket_name: str = "memory",
        objects: Optional[Dict[str, bytes]] = None,
        reachable: bool = True
    ):
        super().__init__(name, bucket_name)
        self._objects: Dict[str, bytes] = dict(objects or {})
        self._lock = threading.Lock()
        self._fault_lock = threading.Lock()
        self._faults: Dict[Tuple[str, Optional[str]], Tuple[BaseException, Optional[int]]] = {}
        self.reachable = reachable
        self.closed = False

    @classmethod
    def with_keys(cls, name: str, keys: Iterable[str]) -> "MemoryObjectStore":
        """Build a store holding ``keys``, each with its key as content."""
        return cls(name=name, bucket_name=name, objects={k: k.encode("utf-8") for k in keys})

    # Fault injection

    def inject_fault(
        self,
        operation: str,
        key: Optional[str] = None,
        error: Optional[BaseException] = None,
        times: Optional[int] = None
    ) -> None:
        """
        Make ``operation`` fail.

        Args:
            operation: One of OPERATIONS
            key: Only fail for this key (None = any key; for ``list`` the
                error is raised when enumeration reaches ``key``)
            error: Exception to raise (defaults to the operation's StorageError)
            times: Number of failures before the fault clears (None = forever)
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        if error is None:
            error_cls = _DEFAULT_ERRORS.get(operation, StorageError)
            error = error_cls(f"injected {operation} failure", key=key, store=self.name)
        self._faults[(operation, key)] = (error, times)

    def clear_faults(self) -> None:
        self._faults.clear()

    def _maybe_fail(self, operation: str, key: Optional[str]) -> None:
        error = None
        with self._fault_lock:
            for fault_key in ((operation, key), (operation, None)):
                fault = self._faults.get(fault_key)
                if fault is None:
                    continue
                error, times = fault
                if times is not None:
                    if times <= 1:
                        del self._faults[fault_key]
                    else:
                        self._faults[fault_key] = (error, times - 1)
                break
        if error is not None:
            raise error

    # ObjectStore

    def list(self) -> Iterator[ObjectRecord]:
        with self._lock:
            keys = list(self._objects)
        if ("list", None) in self._faults:
            self._maybe_fail("list", None)
        for key in keys:
            if ("list", key) in self._faults:
                self._maybe_fail("list", key)
            yield ObjectRecord(key=key, store=self)

    def open_reader(self, key: str) -> io.BytesIO:
        self._maybe_fail("open_reader", key)
        with self._lock:
            if key not in self._objects:
                raise NotFound(f"object not found: {key}", key=key, store=self.name)
            return io.BytesIO(self._objects[key])

    def open_writer(self, key: str) -> ObjectWriter:
        self._maybe_fail("open_writer", key)
        return _MemoryWriter(self, key)

    def delete(self, key: str) -> None:
        self._maybe_fail("delete", key)
        with self._lock:
            if key not in self._objects:
                raise NotFound(f"object not found: {key}", key=key, store=self.name)
            del self._objects[key]

    def check_reachable(self) -> bool:
        self._maybe_fail("check", None)
        return self.reachable

    def close(self) -> None:
        self.closed = True

    # Inspection helpers

    def get(self, key: str) -> bytes:
        with self._lock:
            return self._objects[key]

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[key] = data

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)
