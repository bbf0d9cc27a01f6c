"""
Unit Tests for the Migration Scheduler

Author: Bucket Mover Project
License: MIT
"""

import pytest
from unittest.mock import Mock

from bucket_mover.core.errors import ConfigError, MigrationError, MigrationPhase
from bucket_mover.scheduler.task_scheduler import JOB_ID, MigrationScheduler, build_trigger


class TestBuildTrigger:
    """Test suite for cron parsing."""

    def test_valid_expression(self):
        """Test a five-field expression builds a trigger."""
        trigger = build_trigger("*/15 * * * *")

        assert "minute='*/15'" in str(trigger)

    def test_wrong_field_count(self):
        """Test expressions must have five fields."""
        with pytest.raises(ConfigError):
            build_trigger("* * *")

    def test_invalid_field(self):
        """Test out of range values are rejected."""
        with pytest.raises(ConfigError):
            build_trigger("99 * * * *")


class TestMigrationScheduler:
    """Test suite for MigrationScheduler."""

    def test_disabled_without_schedule(self):
        """Test no job without a schedule."""
        scheduler = MigrationScheduler(None, Mock())

        assert scheduler.enabled is False
        assert scheduler.get_jobs() == []

    def test_job_registered(self):
        """Test the migration job is added for a schedule."""
        scheduler = MigrationScheduler("0 * * * *", Mock())

        jobs = scheduler.get_jobs()
        assert scheduler.enabled is True
        assert [job["id"] for job in jobs] == [JOB_ID]
        assert jobs[0]["name"] == "Bucket Migration"

    def test_run_migration_success(self):
        """Test a successful run calls the callback."""
        migrate = Mock()
        scheduler = MigrationScheduler(None, migrate)

        assert scheduler.run_migration() is True
        migrate.assert_called_once_with()
        assert scheduler.last_error is None

    def test_run_migration_failure_is_logged_not_raised(self):
        """Test migration errors never escape into the scheduler."""
        migrate = Mock(side_effect=MigrationError(MigrationPhase.COPY, key="k"))
        scheduler = MigrationScheduler(None, migrate)

        assert scheduler.run_migration() is False
        assert scheduler.last_error.startswith("failed to copy file")

    def test_start_and_stop(self):
        """Test scheduler lifecycle."""
        scheduler = MigrationScheduler("0 * * * *", Mock())

        scheduler.start()
        try:
            assert scheduler.scheduler.running
            assert scheduler.get_jobs()[0]["next_run"] is not None
        finally:
            scheduler.stop()

        assert not scheduler.scheduler.running
