"""
Configuration Schema and Models

Pydantic models for config.yaml, providing validation, default values,
and type checking for all configuration options.

Author: Bucket Mover Project
License: MIT
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.backoff import BackoffPolicy


class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ProviderType(str, Enum):
    """Supported storage backends."""
    S3 = "s3"
    GCS = "gcs"
    MEMORY = "memory"


class AppConfig(BaseModel):
    """HTTP server and logging configuration."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    host: str = Field(
        default="0.0.0.0",
        description="Web UI host address"
    )
    port: int = Field(
        default=3000,
        description="Web UI port"
    )
    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Application logging level"
    )
    log_to_file: bool = Field(
        default=False,
        description="Enable logging to file"
    )
    log_file_path: str = Field(
        default="logs/bucket_mover.log",
        description="Log file location"
    )
    log_rotation_size: int = Field(
        default=10485760,  # 10MB
        description="Log file size before rotation (bytes)"
    )
    log_retention_count: int = Field(
        default=5,
        description="Number of rotated log files to keep"
    )
    json_logs: bool = Field(
        default=False,
        description="Emit logs as JSON"
    )
    library_log_level: LogLevel = Field(
        default=LogLevel.WARNING,
        description="Level for SDK and HTTP client loggers (botocore, google, urllib3)"
    )

    @field_validator("log_level", "library_log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lowercase level names."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError(f"Port out of range: {v}")
        return v


class ProviderConfig(BaseModel):
    """Common settings for one bucket."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    provider: ProviderType
    bucket_name: str = Field(
        description="Bucket identifier"
    )

    @field_validator("bucket_name")
    @classmethod
    def validate_bucket_name(cls, v):
        """Bucket names are required."""
        v = v.strip()
        if not v:
            raise ValueError("bucket_name must not be empty")
        return v


class AWSConfig(ProviderConfig):
    """AWS S3 bucket configuration."""

    provider: ProviderType = ProviderType.S3
    region: Optional[str] = Field(
        default="us-east-1",
        description="AWS region of the bucket"
    )
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint for S3-compatible services"
    )


class GCPConfig(ProviderConfig):
    """Google Cloud Storage bucket configuration."""

    provider: ProviderType = ProviderType.GCS
    project: Optional[str] = Field(
        default=None,
        description="GCP project (defaults to the credentials file's project)"
    )
    credentials_path: Optional[str] = Field(
        default=None,
        description="Credentials file (defaults to GOOGLE_APPLICATION_CREDENTIALS or gcloud ADC)"
    )


class ReadinessConfig(BaseModel):
    """Backoff settings for the startup credential wait."""

    initial_interval: float = Field(
        default=0.5,
        description="Delay before the first retry (seconds)"
    )
    multiplier: float = Field(
        default=1.5,
        description="Growth factor between retries"
    )
    max_interval: float = Field(
        default=60.0,
        description="Longest single delay (seconds)"
    )
    jitter: float = Field(
        default=0.0,
        description="Random extra delay bound per retry (seconds)"
    )
    max_attempts: Optional[int] = Field(
        default=None,
        description="Attempt ceiling per provider (None waits forever)"
    )
    max_elapsed: Optional[float] = Field(
        default=None,
        description="Time ceiling per provider in seconds (None waits forever)"
    )
    concurrent: bool = Field(
        default=True,
        description="Wait for both providers in parallel"
    )

    @field_validator("initial_interval", "max_interval", "jitter")
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError(f"Interval must be non-negative: {v}")
        return v

    @field_validator("multiplier")
    @classmethod
    def validate_multiplier(cls, v):
        if v < 1:
            raise ValueError(f"Multiplier must be >= 1: {v}")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v):
        if v is not None and v < 1:
            raise ValueError(f"max_attempts must be >= 1: {v}")
        return v

    def build_policy(self, sleep=None) -> BackoffPolicy:
        """Create the BackoffPolicy these settings describe."""
        return BackoffPolicy(
            initial_interval=self.initial_interval,
            multiplier=self.multiplier,
            max_interval=self.max_interval,
            jitter=self.jitter,
            max_attempts=self.max_attempts,
            max_elapsed=self.max_elapsed,
            sleep=sleep
        )


class MigrationConfig(BaseModel):
    """Migration engine configuration."""

    chunk_size: int = Field(
        default=1024 * 1024,
        description="Copy buffer size (bytes)"
    )
    max_workers: int = Field(
        default=1,
        description="Keys transferred in parallel (1 = strictly sequential)"
    )
    schedule: Optional[str] = Field(
        default=None,
        description="Cron expression for automatic migrations (None disables)"
    )

    @field_validator("chunk_size", "max_workers")
    @classmethod
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError(f"Value must be positive: {v}")
        return v

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v):
        """Cron expressions have five fields."""
        if v is None:
            return v
        v = v.strip()
        if not v:
            return None
        if len(v.split()) != 5:
            raise ValueError(f"Invalid cron expression: {v}")
        return v


class Config(BaseModel):
    """
    Root configuration model for Bucket Mover.

    Loaded from config.yaml and overridden by environment variables.
    """

    model_config = ConfigDict(use_enum_values=True, validate_assignment=True)

    app: AppConfig = Field(default_factory=AppConfig)
    aws: AWSConfig
    gcp: GCPConfig
    readiness: ReadinessConfig = Field(default_factory=ReadinessConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
