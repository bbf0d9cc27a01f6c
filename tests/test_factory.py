"""
Unit Tests for the Store Factory

Author: Bucket Mover Project
License: MIT
"""

import pytest
from unittest.mock import MagicMock

from bucket_mover.config.schema import AWSConfig, GCPConfig, ProviderConfig
from bucket_mover.core.errors import ConfigError, CredentialNotYetAvailable
from bucket_mover.storage.factory import open_store
from bucket_mover.storage.memory import MemoryObjectStore
from bucket_mover.storage.s3 import S3ObjectStore


class TestOpenStore:
    """Test suite for open_store."""

    def test_s3(self):
        """Test s3 provider builds an S3ObjectStore."""
        store = open_store(AWSConfig(bucket_name="aws-bucket", region="eu-west-1"), "aws")

        assert isinstance(store, S3ObjectStore)
        assert store.name == "aws"
        assert store.region == "eu-west-1"

    def test_gcs_waits_for_credentials_file(self, tmp_path):
        """Test gcs provider without credentials file asks to wait."""
        config = GCPConfig(bucket_name="gcp-bucket", credentials_path=str(tmp_path / "none.json"))

        with pytest.raises(CredentialNotYetAvailable):
            open_store(config, "gcp")

    def test_memory(self):
        """Test memory provider."""
        store = open_store(ProviderConfig(provider="memory", bucket_name="scratch"), "gcp")

        assert isinstance(store, MemoryObjectStore)
        assert store.bucket_name == "scratch"

    def test_unknown_provider(self):
        """Test anything else is a configuration error."""
        config = MagicMock(provider="azure", bucket_name="x")

        with pytest.raises(ConfigError):
            open_store(config, "aws")
