"""
Bucket Mover Core Module

Retry pacing, provider readiness and the migration engine.

Author: Bucket Mover Project
License: MIT
"""

from .backoff import BackoffPolicy, permanent
from .errors import (
    BucketMoverError,
    ConfigError,
    CredentialNotYetAvailable,
    DeleteError,
    ListError,
    MigrationError,
    MigrationPhase,
    NotFound,
    PermanentError,
    ReadError,
    ReadinessFailed,
    StorageError,
    WriteError,
)
from .migration import MigrationEngine, MigrationPlan, MigrationResult, TransferState
from .readiness import CredentialGate, ReadinessState, await_all

__version__ = "0.1.0"
__all__ = [
    'BackoffPolicy', 'permanent',
    'BucketMoverError', 'ConfigError', 'CredentialNotYetAvailable', 'DeleteError',
    'ListError', 'MigrationError', 'MigrationPhase', 'NotFound', 'PermanentError',
    'ReadError', 'ReadinessFailed', 'StorageError', 'WriteError',
    'MigrationEngine', 'MigrationPlan', 'MigrationResult', 'TransferState',
    'CredentialGate', 'ReadinessState', 'await_all',
]
