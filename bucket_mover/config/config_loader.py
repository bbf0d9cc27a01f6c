"""
Configuration Loader

Loads config.yaml, merges environment variable overrides and validates the
result. Every failure surfaces as ConfigError so startup can abort cleanly.

Author: Bucket Mover Project
License: MIT
"""

import os
import yaml
from pathlib import Path
from typing import Optional, Dict, Any
from dotenv import load_dotenv
from pydantic import ValidationError

from .schema import Config
from ..core.errors import ConfigError

DEFAULT_CONFIG_PATH = "config.yaml"

# (environment variable, section, key, converter)
ENV_OVERRIDES = [
    ("APP_HOST", "app", "host", str),
    ("APP_PORT", "app", "port", int),
    ("HTTP_PORT", "app", "port", int),
    ("APP_LOG_LEVEL", "app", "log_level", str),
    ("APP_LIBRARY_LOG_LEVEL", "app", "library_log_level", str),
    ("AWS_BUCKET_NAME", "aws", "bucket_name", str),
    ("AWS_REGION", "aws", "region", str),
    ("AWS_ENDPOINT_URL", "aws", "endpoint_url", str),
    ("GCP_BUCKET_NAME", "gcp", "bucket_name", str),
    ("GCP_PROJECT", "gcp", "project", str),
    ("GCP_CREDENTIALS_PATH", "gcp", "credentials_path", str),
    ("MIGRATION_MAX_WORKERS", "migration", "max_workers", int),
    ("MIGRATION_SCHEDULE", "migration", "schedule", str),
]


class ConfigLoader:
    """
    Configuration loader.

    Loads configuration from a YAML file, merges with environment variables
    and validates the structure.
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the configuration loader.

        Args:
            config_path: Path to the configuration file. If None, uses
                CONFIG_PATH or ./config.yaml.
        """
        # Load environment variables from .env if present
        load_dotenv()

        self.config_path = config_path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH)
        self._config: Optional[Config] = None

    def load(self) -> Config:
        """
        Load and validate configuration.

        Returns:
            Validated Config object

        Raises:
            ConfigError: If the file is missing, unparsable or invalid
        """
        config_data = self._load_yaml()
        config_data = self._merge_env_vars(config_data)

        try:
            self._config = Config(**config_data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration in {self.config_path}: {e}", cause=e)

        return self._config

    def _load_yaml(self) -> Dict[str, Any]:
        """
        Load YAML configuration file.

        Returns:
            Dictionary with configuration data
        """
        config_file = Path(self.config_path)

        if not config_file.is_file():
            raise ConfigError(f"{config_file.name} file not found: {config_file}")

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML config: {e}", cause=e)
        except OSError as e:
            raise ConfigError(f"Failed to read config {config_file}: {e}", cause=e)

        if not isinstance(data, dict):
            raise ConfigError(f"Config root must be a mapping: {config_file}")
        return data

    def _merge_env_vars(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge environment variables into configuration.

        Environment variables override config file values.
        Naming convention: SECTION_KEY (e.g., APP_PORT, AWS_BUCKET_NAME)

        Args:
            config_data: Configuration dictionary from file

        Returns:
            Merged configuration dictionary
        """
        for env_name, section, key, convert in ENV_OVERRIDES:
            value = os.getenv(env_name)
            if not value:
                continue
            try:
                converted = convert(value)
            except ValueError as e:
                raise ConfigError(f"Invalid value for {env_name}: {value!r}", cause=e)

            section_data = config_data.get(section)
            if not isinstance(section_data, dict):
                section_data = {}
                config_data[section] = section_data
            section_data[key] = converted

        return config_data

    def reload(self) -> Config:
        """
        Reload configuration from file.

        Returns:
            Reloaded Config object
        """
        return self.load()

    @property
    def config(self) -> Optional[Config]:
        """Get the current configuration object."""
        return self._config


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Convenience function to load configuration.

    Args:
        config_path: Optional path to config file

    Returns:
        Loaded and validated Config object
    """
    loader = ConfigLoader(config_path)
    return loader.load()
