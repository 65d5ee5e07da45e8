"""Services package."""

from src.services.cache import QueryCache
from src.services.gateway import (
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
    RemoteDataGateway,
    SupabaseGateway,
)
from src.services.storage import (
    AuditStorageInterface,
    CorruptedDataError,
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    # Cache
    "QueryCache",
    # Gateway
    "GatewayConnectionError",
    "GatewayError",
    "GatewayNotFoundError",
    "RemoteDataGateway",
    "SupabaseGateway",
    # Storage services
    "AuditStorageInterface",
    "CorruptedDataError",
    "InMemoryAuditStorage",
    "InMemoryKeyValueStore",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "StorageError",
    "StorageUnavailableError",
]
