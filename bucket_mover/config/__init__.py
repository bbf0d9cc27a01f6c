"""
Bucket Mover Configuration Module

YAML-based configuration with environment variable overrides and
pydantic validation.

Author: Bucket Mover Project
License: MIT
"""

from .config_loader import ConfigLoader, load_config
from .schema import Config

__version__ = "0.1.0"
__all__ = ["ConfigLoader", "load_config", "Config"]
