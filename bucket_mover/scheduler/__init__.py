"""
Scheduler Module

Periodic migration jobs.

Author: Bucket Mover Project
License: MIT
"""

from .task_scheduler import MigrationScheduler

__all__ = ['MigrationScheduler']
