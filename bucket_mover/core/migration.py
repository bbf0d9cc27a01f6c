"""
Migration Engine

Moves every object from the larger of two stores into the smaller one.
Per key the sequence is strictly ordered:

    open reader -> open writer -> copy -> close reader -> close writer -> delete

and the key moves through LISTED -> READING -> WRITING -> COPIED ->
SOURCE_DELETED. The first failure aborts the run. Keys that already reached
SOURCE_DELETED stay migrated; the failing key is left in the source (and
possibly also in the destination), never lost. Re-running a failed
migration copies the remaining keys again.

Author: Bucket Mover Project
License: MIT
"""

import shutil
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from .errors import MigrationError, MigrationPhase, NotFound, StorageError
from ..storage.base import ObjectStore
from ..utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024


class TransferState(Enum):
    """Progress of a single key through a migration run."""
    LISTED = "listed"
    READING = "reading"
    WRITING = "writing"
    COPIED = "copied"
    SOURCE_DELETED = "source_deleted"


# Step that was running when a key failed while in a given state
_PHASE_BY_STATE = {
    TransferState.LISTED: MigrationPhase.OPEN_READER,
    TransferState.READING: MigrationPhase.OPEN_WRITER,
    TransferState.WRITING: MigrationPhase.COPY,
    TransferState.COPIED: MigrationPhase.DELETE,
    TransferState.SOURCE_DELETED: MigrationPhase.DELETE,
}


@dataclass
class MigrationPlan:
    """Direction and key order for one run. Never persisted."""
    source: ObjectStore
    destination: ObjectStore
    keys: List[str]


@dataclass
class MigrationResult:
    """Outcome of a successful run."""
    source: str
    destination: str
    migrated: int
    keys: List[str] = field(default_factory=list)
    finished_at: datetime = field(default_factory=datetime.now)

    @property
    def direction(self) -> str:
        return f"{self.source} -> {self.destination}"


@dataclass
class KeyTransfer:
    """Tracks one key's state during a run."""
    key: str
    state: TransferState = TransferState.LISTED


class TransferFailed(Exception):
    """A single key's transfer failed at ``phase``."""

    def __init__(self, transfer: KeyTransfer, phase: MigrationPhase, cause: BaseException):
        super().__init__(f"{transfer.key}: {phase.value}: {cause}")
        self.transfer = transfer
        self.phase = phase
        self.cause = cause


class MigrationEngine:
    """
    Bucket-to-bucket migration.

    Stores are passed to every call; the engine keeps no reference to them.
    Runs are serialized: a second ``migrate`` call waits for the first.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE, max_workers: int = 1):
        """
        Initialize migration engine.

        Args:
            chunk_size: Copy buffer size in bytes
            max_workers: Keys transferred concurrently. With more than one
                worker a failure stops keys that have not started yet while
                keys already in flight run to completion.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive: {chunk_size}")
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive: {max_workers}")

        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self._run_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self.stats = {
            "runs": 0,
            "failed_runs": 0,
            "objects_migrated": 0,
        }

        logger.info(f"MigrationEngine initialized (max_workers={max_workers})")

    def _enumerate(self, store: ObjectStore) -> List[str]:
        try:
            return store.list_keys()
        except StorageError as e:
            raise MigrationError(MigrationPhase.LIST, store=store.name, cause=e) from e

    def plan(self, store_a: ObjectStore, store_b: ObjectStore) -> MigrationPlan:
        """
        Enumerate both stores and pick the direction.

        The store with strictly more objects is the source; on a tie
        ``store_a`` is.

        Raises:
            MigrationError: Listing either store failed (phase LIST)
        """
        keys_a = self._enumerate(store_a)
        keys_b = self._enumerate(store_b)

        if len(keys_b) > len(keys_a):
            return MigrationPlan(source=store_b, destination=store_a, keys=keys_b)
        return MigrationPlan(source=store_a, destination=store_b, keys=keys_a)

    def migrate(
        self,
        store_a: ObjectStore,
        store_b: ObjectStore,
        cancel_event: Optional[threading.Event] = None
    ) -> MigrationResult:
        """
        Move every object from the larger store into the smaller one.

        Args:
            store_a: First store (source on a tie)
            store_b: Second store
            cancel_event: When set, no further key is started

        Returns:
            MigrationResult with the direction and migrated count

        Raises:
            MigrationError: Carrying the failing phase, key and the number of
                keys migrated before the abort
        """
        with self._run_lock:
            try:
                result = self._migrate(store_a, store_b, cancel_event)
            except MigrationError as e:
                self._record(failed=True, migrated=e.migrated)
                logger.error(f"Migration aborted: {e}")
                raise

            self._record(failed=False, migrated=result.migrated)
            logger.info(f"Migration complete: {result.migrated} objects {result.direction}")
            return result

    def _migrate(
        self,
        store_a: ObjectStore,
        store_b: ObjectStore,
        cancel_event: Optional[threading.Event]
    ) -> MigrationResult:
        plan = self.plan(store_a, store_b)
        logger.info(
            f"Migrating {len(plan.keys)} objects from {plan.source.name} "
            f"to {plan.destination.name}"
        )

        if self.max_workers > 1 and len(plan.keys) > 1:
            migrated = self._run_parallel(plan, cancel_event)
        else:
            migrated = self._run_sequential(plan, cancel_event)

        return MigrationResult(
            source=plan.source.name,
            destination=plan.destination.name,
            migrated=len(migrated),
            keys=migrated
        )

    def _run_sequential(self, plan: MigrationPlan, cancel_event: Optional[threading.Event]) -> List[str]:
        migrated: List[str] = []
        for key in plan.keys:
            if cancel_event is not None and cancel_event.is_set():
                raise self._error(plan, MigrationPhase.CANCELLED, None, len(migrated))
            try:
                self.transfer(plan, key)
            except TransferFailed as failure:
                raise self._error(
                    plan, failure.phase, key, len(migrated), failure.cause
                ) from failure.cause
            migrated.append(key)
        return migrated

    def _run_parallel(self, plan: MigrationPlan, cancel_event: Optional[threading.Event]) -> List[str]:
        abort = threading.Event()

        def run(key: str) -> bool:
            if abort.is_set() or (cancel_event is not None and cancel_event.is_set()):
                return False
            try:
                self.transfer(plan, key)
            except TransferFailed:
                abort.set()
                raise
            return True

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="migrate") as pool:
            futures = [(key, pool.submit(run, key)) for key in plan.keys]

        migrated: List[str] = []
        first_failure: Optional[TransferFailed] = None
        skipped = 0
        for key, future in futures:
            error = future.exception()
            if error is None:
                if future.result():
                    migrated.append(key)
                else:
                    skipped += 1
            elif isinstance(error, TransferFailed):
                if first_failure is None:
                    first_failure = error
            else:
                raise error

        if first_failure is not None:
            raise self._error(
                plan,
                first_failure.phase,
                first_failure.transfer.key,
                len(migrated),
                first_failure.cause
            ) from first_failure.cause
        if skipped:
            raise self._error(plan, MigrationPhase.CANCELLED, None, len(migrated))
        return migrated

    def transfer(self, plan: MigrationPlan, key: str) -> KeyTransfer:
        """
        Copy one key to the destination, then delete it from the source.

        A NotFound from the delete step means someone else removed the
        source object after the copy completed; the key still counts as
        migrated.

        Raises:
            TransferFailed: With the phase that failed
        """
        transfer = KeyTransfer(key=key)
        try:
            self._transfer(plan, transfer)
        except TransferFailed:
            raise
        except Exception as e:
            raise TransferFailed(transfer, _PHASE_BY_STATE[transfer.state], e)
        return transfer

    def _transfer(self, plan: MigrationPlan, transfer: KeyTransfer) -> None:
        source, destination = plan.source, plan.destination
        key = transfer.key

        try:
            reader = source.open_reader(key)
        except Exception as e:
            raise TransferFailed(transfer, MigrationPhase.OPEN_READER, e)
        transfer.state = TransferState.READING

        try:
            writer = destination.open_writer(key)
        except Exception as e:
            self._close_quietly(reader, key)
            raise TransferFailed(transfer, MigrationPhase.OPEN_WRITER, e)
        transfer.state = TransferState.WRITING

        try:
            shutil.copyfileobj(reader, writer, self.chunk_size)
        except Exception as e:
            self._abort_quietly(writer, key)
            self._close_quietly(reader, key)
            raise TransferFailed(transfer, MigrationPhase.COPY, e)

        try:
            reader.close()
        except Exception as e:
            self._abort_quietly(writer, key)
            raise TransferFailed(transfer, MigrationPhase.CLOSE_READER, e)

        try:
            writer.close()
        except Exception as e:
            raise TransferFailed(transfer, MigrationPhase.CLOSE_WRITER, e)
        transfer.state = TransferState.COPIED

        try:
            source.delete(key)
        except NotFound:
            logger.warning(f"{key} already gone from {source.name} after copy")
        except Exception as e:
            raise TransferFailed(transfer, MigrationPhase.DELETE, e)
        transfer.state = TransferState.SOURCE_DELETED

        logger.debug(f"Migrated {key}: {source.name} -> {destination.name}")

    @staticmethod
    def _abort_quietly(writer, key: str) -> None:
        try:
            writer.abort()
        except Exception as e:
            logger.warning(f"Failed to abort upload of {key}: {e}")

    @staticmethod
    def _close_quietly(reader, key: str) -> None:
        try:
            reader.close()
        except Exception as e:
            logger.warning(f"Failed to close reader for {key}: {e}")

    @staticmethod
    def _error(
        plan: MigrationPlan,
        phase: MigrationPhase,
        key: Optional[str],
        migrated: int,
        cause: Optional[BaseException] = None
    ) -> MigrationError:
        return MigrationError(
            phase,
            key=key,
            migrated=migrated,
            source=plan.source.name,
            destination=plan.destination.name,
            cause=cause,
            store=plan.source.name
        )

    def _record(self, failed: bool, migrated: int) -> None:
        with self._stats_lock:
            self.stats["runs"] += 1
            self.stats["objects_migrated"] += migrated
            if failed:
                self.stats["failed_runs"] += 1

    def get_stats(self) -> Dict:
        """Get migration statistics."""
        with self._stats_lock:
            return self.stats.copy()
