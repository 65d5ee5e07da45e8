"""
In-Memory Storage Implementations

Used by tests and by callers that do not need the queue to survive a
restart. Behaves like the file store, including raising StorageError
when a failure has been injected.
"""

from typing import Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.services.storage.interface import (
    AuditStorageInterface,
    KeyValueStore,
    StorageUnavailableError,
)


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed key/value store."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._items: dict[str, str] = dict(initial or {})
        self.fail_writes = False
        self.fail_reads = False

    async def get_item(self, key: str) -> Optional[str]:
        if self.fail_reads:
            raise StorageUnavailableError(f"Read of '{key}' failed")
        return self._items.get(key)

    async def set_item(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageUnavailableError(f"Write of '{key}' failed")
        self._items[key] = value

    async def remove_item(self, key: str) -> None:
        if self.fail_writes:
            raise StorageUnavailableError(f"Delete of '{key}' failed")
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class InMemoryAuditStorage(AuditStorageInterface):
    """Keeps audit events in a list, oldest first."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)
