"""
Durable Mutation Log

Ordered list of pending write intents persisted under one key. The whole
list is read, modified, and written back on every change; there is no
partial or indexed update of the stored value.

DESIGN DECISIONS:
- Reading is data-loss tolerant. A missing value, an unparseable value, or
  a value of the wrong shape reads as an empty log; malformed entries are
  dropped one by one. A log that cannot be read must not wedge the app.
- Writing is NOT tolerant. A failed write raises StorageError and the caller
  decides what to do with it.
- Every entry gets a growing ``sequence`` on append. A drain cycle removes
  entries up to the sequence it started from (``discard_through``), so an
  entry appended while the cycle was replaying survives it.
- Read-modify-write operations are serialised with an asyncio.Lock.
"""

import asyncio
import json
from collections.abc import Sequence

import structlog
from pydantic import ValidationError

from src.models.mutation import Mutation
from src.services.storage import CorruptedDataError, KeyValueStore


logger = structlog.get_logger(__name__)

DEFAULT_STORAGE_KEY = "offline_mutation_queue"


class DurableMutationLog:
    """
    Append-only, replace-on-write list of Mutations.

    Usage:
        log = DurableMutationLog(store)
        queued = await log.append(Mutation(kind="create_debt", owner_id=uid, payload={...}))
        pending = await log.read_all()
        await log.discard_through(pending[-1].sequence)
    """

    def __init__(self, store: KeyValueStore, key: str = DEFAULT_STORAGE_KEY):
        self._store = store
        self._key = key
        self._lock = asyncio.Lock()

    @property
    def key(self) -> str:
        return self._key

    @staticmethod
    def decode(raw: str) -> list[Mutation]:
        """
        Parse a stored value.

        Raises:
            CorruptedDataError: If the value is not a JSON list
        """
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise CorruptedDataError(f"Offline queue is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise CorruptedDataError(
                f"Offline queue must be a list, got {type(data).__name__}"
            )

        mutations = []
        for index, item in enumerate(data):
            try:
                mutations.append(Mutation.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "offline_queue_entry_dropped",
                    index=index,
                    error=str(e),
                )
        return mutations

    @staticmethod
    def encode(mutations: Sequence[Mutation]) -> str:
        return json.dumps([m.model_dump(mode="json") for m in mutations])

    async def _load(self) -> list[Mutation]:
        raw = await self._store.get_item(self._key)
        if not raw:
            return []
        try:
            return self.decode(raw)
        except CorruptedDataError as e:
            logger.warning("offline_queue_unreadable", key=self._key, error=str(e))
            return []

    async def _save(self, mutations: Sequence[Mutation]) -> None:
        if mutations:
            await self._store.set_item(self._key, self.encode(mutations))
        else:
            await self._store.remove_item(self._key)

    async def read_all(self) -> list[Mutation]:
        """
        Current pending mutations in insertion order.

        Returns an empty list for a missing or corrupt value.

        Raises:
            StorageError: Only if the storage backend itself fails
        """
        async with self._lock:
            return await self._load()

    async def append(self, mutation: Mutation) -> Mutation:
        """
        Append one mutation, assigning it the next sequence number.

        Returns:
            The stored mutation (with its sequence)

        Raises:
            StorageError: If the log cannot be written
        """
        async with self._lock:
            current = await self._load()
            next_sequence = max((m.sequence for m in current), default=0) + 1
            stored = mutation.model_copy(update={"sequence": next_sequence})
            await self._save([*current, stored])
            return stored

    async def clear(self) -> None:
        """
        Delete the whole persisted log.

        Raises:
            StorageError: If the delete fails
        """
        async with self._lock:
            await self._store.remove_item(self._key)

    async def discard_through(
        self,
        cursor: int,
        retain: Sequence[Mutation] = (),
    ) -> int:
        """
        Remove every entry with ``sequence <= cursor``.

        ``retain`` entries are put back at the head of the log, ahead of
        anything appended after the cursor, keeping their relative order.

        Returns:
            Number of entries removed (retained entries not counted)

        Raises:
            StorageError: If the log cannot be written
        """
        async with self._lock:
            current = await self._load()
            newer = [m for m in current if m.sequence > cursor]
            removed = len(current) - len(newer)
            retained_ids = {m.mutation_id for m in retain}
            await self._save([*retain, *newer])
            return removed - len(
                [m for m in current if m.sequence <= cursor and m.mutation_id in retained_ids]
            )
