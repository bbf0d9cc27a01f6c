"""
Task Scheduler

APScheduler integration for running migrations on a cron schedule, so the
two buckets stay synchronized without anyone pressing the move button.

Author: Bucket Mover Project
License: MIT
"""

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from typing import Callable, List, Optional

from ..core.errors import ConfigError, MigrationError
from ..utils.logger import get_logger

logger = get_logger(__name__)

JOB_ID = 'migration'


def build_trigger(cron_expr: str) -> CronTrigger:
    """
    Build a UTC cron trigger.

    Args:
        cron_expr: "minute hour day month day_of_week"

    Raises:
        ConfigError: Expression is malformed
    """
    parts = cron_expr.split()
    if len(parts) != 5:
        raise ConfigError(f"Invalid cron expression: {cron_expr}")

    try:
        return CronTrigger(
            minute=parts[0],
            hour=parts[1],
            day=parts[2],
            month=parts[3],
            day_of_week=parts[4],
            timezone='UTC'
        )
    except ValueError as e:
        raise ConfigError(f"Invalid cron expression: {cron_expr}: {e}", cause=e) from e


class MigrationScheduler:
    """
    Runs the migration callback periodically.

    The callback is the same one the ``/move`` endpoint uses, so scheduled
    and manual runs share the engine's run lock and never overlap.
    """

    def __init__(self, schedule: Optional[str], migrate: Callable[[], object]):
        """
        Initialize migration scheduler.

        Args:
            schedule: Cron expression, or None to disable the job
            migrate: Zero-argument callable performing one migration run
        """
        self.schedule = schedule
        self._migrate = migrate
        self.scheduler = BackgroundScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # Combine missed executions
                'max_instances': 1
            }
        )
        self.last_error: Optional[str] = None

        if schedule:
            self.scheduler.add_job(
                func=self.run_migration,
                trigger=build_trigger(schedule),
                id=JOB_ID,
                name='Bucket Migration',
                replace_existing=True
            )
            logger.info(f"Added migration job with schedule: {schedule}")

        logger.info("MigrationScheduler initialized")

    @property
    def enabled(self) -> bool:
        return bool(self.schedule)

    def start(self):
        """Start the scheduler."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if not self.scheduler.running:
            return

        self.scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")

    def run_migration(self) -> bool:
        """
        Execute one scheduled migration.

        Returns:
            True if the run succeeded
        """
        logger.info("Executing scheduled migration")

        try:
            self._migrate()
        except MigrationError as e:
            self.last_error = str(e)
            logger.error(f"Scheduled migration failed: {e}")
            return False
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"Error in scheduled migration: {e}", exc_info=True)
            return False

        self.last_error = None
        return True

    def get_jobs(self) -> List[dict]:
        """
        Get list of scheduled jobs.

        Returns:
            List of job information dictionaries
        """
        jobs = []

        for job in self.scheduler.get_jobs():
            next_run = getattr(job, 'next_run_time', None)

            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger)
            })

        return jobs
