"""
Storage Services Package

Provides abstract interfaces and concrete implementations for local persistence.
The offline queue is kept in JSON files by default, but the backend is swappable.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    CorruptedDataError,
    KeyValueStore,
    StorageError,
    StorageUnavailableError,
)
from src.services.storage.file_store import JsonFileKeyValueStore
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KeyValueStore",
    # Exceptions
    "CorruptedDataError",
    "StorageError",
    "StorageUnavailableError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
]
