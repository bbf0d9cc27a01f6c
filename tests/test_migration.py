"""
Unit Tests for Migration Engine

Tests direction selection, copy-then-delete ordering, failure phases,
parallel runs and cancellation.

Author: Bucket Mover Project
License: MIT
"""

import threading
import pytest

from bucket_mover.core.errors import (
    DeleteError,
    MigrationError,
    MigrationPhase,
    NotFound,
    ReadError,
    WriteError,
)
from bucket_mover.core.migration import MigrationEngine, MigrationResult
from bucket_mover.storage.memory import MemoryObjectStore


def keys_of(store):
    return set(store.list_keys())


@pytest.fixture
def engine():
    return MigrationEngine()


class TestDirection:
    """Test suite for picking source and destination."""

    def test_larger_store_is_source(self, engine):
        """Test the store with more objects is the source."""
        aws = MemoryObjectStore.with_keys("aws", ["x"])
        gcp = MemoryObjectStore.with_keys("gcp", ["y", "z"])

        plan = engine.plan(aws, gcp)

        assert plan.source is gcp
        assert plan.destination is aws
        assert plan.keys == ["y", "z"]

    def test_tie_picks_first_store(self, engine):
        """Test equal sizes keep store_a as source."""
        aws = MemoryObjectStore.with_keys("aws", ["a"])
        gcp = MemoryObjectStore.with_keys("gcp", ["b"])

        assert engine.plan(aws, gcp).source is aws
        assert engine.plan(gcp, aws).source is gcp

    @pytest.mark.parametrize("size_a,size_b", [(0, 0), (3, 0), (0, 3), (2, 5), (5, 2), (4, 4)])
    def test_direction_follows_listing_size(self, engine, size_a, size_b):
        """Test direction depends only on relative size."""
        aws = MemoryObjectStore.with_keys("aws", [f"a{i}" for i in range(size_a)])
        gcp = MemoryObjectStore.with_keys("gcp", [f"b{i}" for i in range(size_b)])

        plan = engine.plan(aws, gcp)

        expected = gcp if size_b > size_a else aws
        assert plan.source is expected


class TestMigrate:
    """Test suite for successful runs."""

    def test_moves_everything_into_empty_store(self, engine):
        """Test {a,b,c} / {} ends as {} / {a,b,c}."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b", "c"])
        gcp = MemoryObjectStore(name="gcp")

        result = engine.migrate(aws, gcp)

        assert isinstance(result, MigrationResult)
        assert result.migrated == 3
        assert result.direction == "aws -> gcp"
        assert keys_of(gcp) == {"a", "b", "c"}
        assert keys_of(aws) == set()

    def test_smaller_store_drained_into_larger(self, engine):
        """Test {x} / {y,z} ends with aws holding {x,y,z}."""
        aws = MemoryObjectStore.with_keys("aws", ["x"])
        gcp = MemoryObjectStore.with_keys("gcp", ["y", "z"])

        result = engine.migrate(aws, gcp)

        assert result.migrated == 2
        assert result.direction == "gcp -> aws"
        assert keys_of(aws) == {"x", "y", "z"}
        assert keys_of(gcp) == set()

    def test_contents_preserved(self):
        """Test bytes survive the move, across several chunks."""
        payload = bytes(range(256)) * 100
        aws = MemoryObjectStore(name="aws", objects={"blob.bin": payload})
        gcp = MemoryObjectStore(name="gcp")

        MigrationEngine(chunk_size=1000).migrate(aws, gcp)

        assert gcp.get("blob.bin") == payload

    def test_overwrites_existing_destination_key(self, engine):
        """Test a key present on both sides ends with the source's bytes."""
        aws = MemoryObjectStore(name="aws", objects={"k": b"new", "other": b"o"})
        gcp = MemoryObjectStore(name="gcp", objects={"k": b"old"})

        engine.migrate(aws, gcp)

        assert gcp.get("k") == b"new"
        assert len(aws) == 0

    def test_second_run_moves_keys_back(self, engine):
        """Test direction is chosen afresh, so a second run returns the keys."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b"])
        gcp = MemoryObjectStore(name="gcp")

        first = engine.migrate(aws, gcp)
        second = engine.migrate(aws, gcp)

        assert first.direction == "aws -> gcp"
        assert second.direction == "gcp -> aws"
        assert second.migrated == 2
        assert keys_of(aws) == {"a", "b"}
        assert keys_of(gcp) == set()
        assert aws.get("a") == b"a"

    @pytest.mark.parametrize("runs", [1, 2, 3])
    def test_every_run_leaves_one_store_empty(self, engine, runs):
        """Test repeated runs never fail and never lose a key."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b", "c"])
        gcp = MemoryObjectStore.with_keys("gcp", ["d"])

        for _ in range(runs):
            engine.migrate(aws, gcp)

        assert keys_of(aws) | keys_of(gcp) == {"a", "b", "c", "d"}
        assert min(len(aws), len(gcp)) == 0

    def test_empty_stores(self, engine):
        """Test two empty stores migrate zero keys."""
        result = engine.migrate(MemoryObjectStore(name="aws"), MemoryObjectStore(name="gcp"))

        assert result.migrated == 0
        assert result.keys == []

    def test_delete_not_found_counts_as_migrated(self, engine):
        """Test a raced deletion after copy is not a failure."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b", "c"])
        gcp = MemoryObjectStore(name="gcp")
        aws.inject_fault("delete", key="b", error=NotFound("gone", key="b"))

        result = engine.migrate(aws, gcp)

        assert result.migrated == 3
        assert keys_of(gcp) == {"a", "b", "c"}


class TestFailures:
    """Test suite for aborted runs."""

    @pytest.fixture
    def stores(self):
        return (
            MemoryObjectStore.with_keys("aws", ["a", "b", "c"]),
            MemoryObjectStore(name="gcp"),
        )

    def test_writer_failure_keeps_key_in_source(self, engine, stores):
        """Test a write failure on k leaves k in source and earlier keys moved."""
        aws, gcp = stores
        gcp.inject_fault("write", key="b")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        error = exc_info.value
        assert error.phase == MigrationPhase.COPY
        assert error.key == "b"
        assert error.migrated == 1
        assert isinstance(error.cause, WriteError)
        assert str(error).startswith("failed to copy file")
        assert keys_of(aws) == {"b", "c"}
        assert keys_of(gcp) == {"a"}

    def test_commit_failure(self, engine, stores):
        """Test a failing close of the writer."""
        aws, gcp = stores
        gcp.inject_fault("commit", key="a")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.phase == MigrationPhase.CLOSE_WRITER
        assert exc_info.value.reason == "failed to close destination writer"
        assert exc_info.value.migrated == 0
        assert keys_of(aws) == {"a", "b", "c"}
        assert "a" not in gcp

    def test_open_reader_failure(self, engine, stores):
        """Test a failing source read."""
        aws, gcp = stores
        aws.inject_fault("open_reader", key="c", error=ReadError("denied", key="c"))

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.phase == MigrationPhase.OPEN_READER
        assert exc_info.value.reason == "failed to get handle for object in source bucket"
        assert exc_info.value.migrated == 2
        assert keys_of(aws) == {"c"}

    def test_open_writer_failure(self, engine, stores):
        """Test a failing destination writer open."""
        aws, gcp = stores
        gcp.inject_fault("open_writer")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.phase == MigrationPhase.OPEN_WRITER
        assert exc_info.value.key == "a"
        assert len(gcp) == 0

    def test_delete_failure_leaves_copy_in_both(self, engine, stores):
        """Test a failing delete: key is in both stores, never lost."""
        aws, gcp = stores
        aws.inject_fault("delete", key="a", error=DeleteError("denied", key="a"))

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.phase == MigrationPhase.DELETE
        assert str(exc_info.value).startswith("failed to remove the old object from source")
        assert "a" in aws
        assert "a" in gcp

    def test_list_failure_names_bucket(self, engine, stores):
        """Test listing errors name the failing bucket."""
        aws, gcp = stores
        gcp.inject_fault("list")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.phase == MigrationPhase.LIST
        assert exc_info.value.reason == "failed to list items in gcp bucket"
        assert keys_of(aws) == {"a", "b", "c"}

    def test_list_failure_midway(self, engine, stores):
        """Test an error partway through enumeration is not a short listing."""
        aws, gcp = stores
        aws.inject_fault("list", key="b")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        assert exc_info.value.reason == "failed to list items in aws bucket"
        assert len(gcp) == 0

    def test_rerun_after_failure_finishes(self, engine, stores):
        """Test the remaining keys move once the fault clears."""
        aws, gcp = stores
        gcp.inject_fault("write", key="b", times=1)

        with pytest.raises(MigrationError):
            engine.migrate(aws, gcp)
        result = engine.migrate(aws, gcp)

        assert result.migrated == 2
        assert keys_of(gcp) == {"a", "b", "c"}
        assert len(aws) == 0

    def test_cancelled_before_start(self, engine, stores):
        """Test a set cancel event starts no key."""
        aws, gcp = stores
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp, cancel_event=cancel)

        assert exc_info.value.phase == MigrationPhase.CANCELLED
        assert exc_info.value.migrated == 0
        assert keys_of(aws) == {"a", "b", "c"}


class AbortFailsStore(MemoryObjectStore):
    """Destination whose writers cannot be aborted."""

    def open_writer(self, key):
        writer = super().open_writer(key)

        def abort():
            raise RuntimeError("cannot cancel upload")

        writer.abort = abort
        return writer


class TestAbortFailure:
    """Test suite for a failing abort during a failed copy."""

    def test_sequential_keeps_copy_error(self, engine):
        """Test the copy error is reported, not the abort error."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b", "c"])
        gcp = AbortFailsStore(name="gcp")
        gcp.inject_fault("write", key="b")

        with pytest.raises(MigrationError) as exc_info:
            engine.migrate(aws, gcp)

        error = exc_info.value
        assert error.phase == MigrationPhase.COPY
        assert error.key == "b"
        assert error.migrated == 1
        assert isinstance(error.cause, WriteError)
        assert keys_of(aws) == {"b", "c"}

    def test_parallel_keeps_copy_error(self):
        """Test parallel runs also surface a MigrationError for the copy."""
        keys = [f"k{i}" for i in range(6)]
        aws = MemoryObjectStore.with_keys("aws", keys)
        gcp = AbortFailsStore(name="gcp")
        gcp.inject_fault("write", key="k2")

        with pytest.raises(MigrationError) as exc_info:
            MigrationEngine(max_workers=3).migrate(aws, gcp)

        error = exc_info.value
        assert error.phase == MigrationPhase.COPY
        assert error.key == "k2"
        assert isinstance(error.cause, WriteError)
        assert "k2" in aws
        assert len(aws) == len(keys) - error.migrated

    def test_failed_abort_logged(self, engine, caplog):
        """Test the abort failure is logged as a warning."""
        aws = MemoryObjectStore.with_keys("aws", ["a"])
        gcp = AbortFailsStore(name="gcp")
        gcp.inject_fault("write", key="a")

        with caplog.at_level("WARNING", logger="bucket_mover"):
            with pytest.raises(MigrationError):
                engine.migrate(aws, gcp)

        assert "Failed to abort upload of a" in caplog.text


class TestParallel:
    """Test suite for bounded parallel migration."""

    def test_parallel_moves_everything(self):
        """Test all keys arrive with several workers."""
        keys = [f"k{i}" for i in range(20)]
        aws = MemoryObjectStore.with_keys("aws", keys)
        gcp = MemoryObjectStore(name="gcp")

        result = MigrationEngine(max_workers=4).migrate(aws, gcp)

        assert result.migrated == 20
        assert keys_of(gcp) == set(keys)
        assert len(aws) == 0

    def test_parallel_failure_keeps_unmigrated_in_source(self):
        """Test a failure stops unstarted keys; migrated count matches."""
        keys = [f"k{i}" for i in range(20)]
        aws = MemoryObjectStore.with_keys("aws", keys)
        gcp = MemoryObjectStore(name="gcp")
        gcp.inject_fault("write", key="k3")

        with pytest.raises(MigrationError) as exc_info:
            MigrationEngine(max_workers=4).migrate(aws, gcp)

        error = exc_info.value
        assert error.phase == MigrationPhase.COPY
        assert error.key == "k3"
        assert "k3" in aws
        assert "k3" not in gcp
        assert len(aws) == 20 - error.migrated
        assert keys_of(aws).isdisjoint(keys_of(gcp))

    def test_parallel_reports_first_failure_in_listing_order(self):
        """Test the reported key is the earliest failing one."""
        keys = [f"k{i}" for i in range(4)]
        aws = MemoryObjectStore.with_keys("aws", keys)
        started = threading.Barrier(len(keys), timeout=5)

        class AllFailStore(MemoryObjectStore):
            def open_writer(self, key):
                # Every key is in flight before any of them fails
                started.wait()
                raise WriteError("denied", key=key, store=self.name)

        gcp = AllFailStore(name="gcp")

        with pytest.raises(MigrationError) as exc_info:
            MigrationEngine(max_workers=4).migrate(aws, gcp)

        assert exc_info.value.key == "k0"
        assert exc_info.value.migrated == 0


class TestStats:
    """Test suite for engine statistics."""

    def test_stats_track_runs(self, engine):
        """Test counters after a success and a failure."""
        aws = MemoryObjectStore.with_keys("aws", ["a", "b"])
        gcp = MemoryObjectStore(name="gcp")
        engine.migrate(aws, gcp)

        gcp.inject_fault("delete")
        with pytest.raises(MigrationError):
            engine.migrate(aws, gcp)

        stats = engine.get_stats()
        assert stats["runs"] == 2
        assert stats["failed_runs"] == 1
        assert stats["objects_migrated"] == 2

    def test_invalid_settings(self):
        """Test constructor validation."""
        with pytest.raises(ValueError):
            MigrationEngine(chunk_size=0)
        with pytest.raises(ValueError):
            MigrationEngine(max_workers=0)
