"""
Storage Module

ObjectStore interface and the in-memory store. Provider adapters live in
``storage.s3`` and ``storage.gcs``; ``storage.factory.open_store`` picks one
from configuration.

Author: Bucket Mover Project
License: MIT
"""

from .base import ObjectRecord, ObjectStore, ObjectWriter
from .memory import MemoryObjectStore

__all__ = ['ObjectRecord', 'ObjectStore', 'ObjectWriter', 'MemoryObjectStore']
