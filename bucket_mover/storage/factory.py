"""
Store Factory

Builds the ObjectStore adapter a provider configuration describes.

Author: Bucket Mover Project
License: MIT
"""

from .base import ObjectStore
from .gcs import GCSObjectStore
from .memory import MemoryObjectStore
from .s3 import S3ObjectStore
from ..config.schema import ProviderConfig, ProviderType
from ..core.errors import ConfigError


def open_store(provider_config: ProviderConfig, name: str) -> ObjectStore:
    """
    Open a fresh handle on the configured bucket.

    Args:
        provider_config: AWSConfig, GCPConfig or any ProviderConfig
        name: Label for the store (``aws``/``gcp``)

    Returns:
        New ObjectStore instance

    Raises:
        ConfigError: Unknown provider or unusable settings
        CredentialNotYetAvailable: The provider cannot authenticate yet
    """
    provider = provider_config.provider

    if provider == ProviderType.S3:
        return S3ObjectStore(
            bucket_name=provider_config.bucket_name,
            region=getattr(provider_config, "region", None),
            endpoint_url=getattr(provider_config, "endpoint_url", None),
            name=name
        )
    if provider == ProviderType.GCS:
        return GCSObjectStore(
            bucket_name=provider_config.bucket_name,
            project=getattr(provider_config, "project", None),
            credentials_path=getattr(provider_config, "credentials_path", None),
            name=name
        )
    if provider == ProviderType.MEMORY:
        return MemoryObjectStore(name=name, bucket_name=provider_config.bucket_name)

    raise ConfigError(f"Unknown storage provider for {name}: {provider}")
