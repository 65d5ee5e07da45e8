"""
Offline Queue Models

A Mutation is one write intent recorded while the device was offline.
Mutations are immutable once enqueued; their order in the log is the order
the user issued them and is the order they are replayed in.

DESIGN DECISION: ``kind`` is stored as a plain string rather than the enum.
A log written by another build may contain kinds this build does not know;
those entries must still load so the replay processor can report and skip
them instead of the whole log becoming unreadable.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.models.finance import EntityType


class MutationKind(str, Enum):
    """Write intents the offline queue can carry."""
    CREATE_DEBT = "create_debt"
    UPDATE_DEBT = "update_debt"
    DELETE_DEBT = "delete_debt"
    CREATE_ASSET = "create_asset"
    UPDATE_ASSET = "update_asset"
    DELETE_ASSET = "delete_asset"

    @property
    def entity(self) -> EntityType:
        if self.value.endswith("_debt"):
            return EntityType.DEBT
        return EntityType.ASSET

    @property
    def is_create(self) -> bool:
        return self.value.startswith("create_")


class FailurePolicy(str, Enum):
    """
    What a drain cycle does with a mutation the server rejected.

    DISCARD is the long-standing behaviour: the entry is dropped together
    with everything else when the cycle clears the log.
    """
    DISCARD = "discard"
    RETRY = "retry"              # keep at the head of the log for a bounded number of cycles
    DEAD_LETTER = "dead_letter"  # move to a separate, inspectable log


class Mutation(BaseModel):
    """
    A queued, immutable description of one pending create/update/delete.

    ``sequence`` is assigned by the mutation log on append and only grows;
    it is what lets a drain cycle remove exactly the entries it looked at.
    """
    model_config = ConfigDict(frozen=True)

    mutation_id: UUID = Field(default_factory=uuid4)
    kind: str = Field(..., min_length=1)
    owner_id: str = Field(..., min_length=1, description="Identity that issued the intent")
    payload: dict[str, Any] = Field(default_factory=dict)
    sequence: int = Field(default=0, ge=0)
    enqueued_at: datetime = Field(default_factory=datetime.utcnow)
    attempts: int = Field(default=0, ge=0)
    last_error: Optional[str] = None

    @property
    def known_kind(self) -> Optional[MutationKind]:
        """The kind as an enum, or None if this build does not recognise it."""
        try:
            return MutationKind(self.kind)
        except ValueError:
            return None

    @property
    def target_id(self) -> Optional[str]:
        """Identifier of the record this mutation touches, if any."""
        value = self.payload.get("id")
        return str(value) if value is not None else None


class DispatchResult(BaseModel):
    """
    Result handed back to the caller of a dispatch entry point.

    ``queued`` is True when the intent was written to the offline log; in
    that case ``record`` is the optimistic version from the cache (None for
    deletes, or for updates of a record that is not cached).
    """
    queued: bool
    kind: MutationKind
    entity_id: str
    record: Optional[Any] = None


class ReplayState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"


class DrainStatus(str, Enum):
    """How a drain cycle ended."""
    COMPLETED = "completed"
    EMPTY = "empty"
    SKIPPED_OFFLINE = "skipped_offline"
    SKIPPED_UNAUTHENTICATED = "skipped_unauthenticated"
    SKIPPED_BUSY = "skipped_busy"
    STORAGE_UNAVAILABLE = "storage_unavailable"


class DrainReport(BaseModel):
    """
    Outcome of one drain cycle.

    Counts refer to the entries selected for the current identity, except
    ``discarded`` which counts every entry removed from the log.
    """
    status: DrainStatus
    owner_id: Optional[str] = None
    correlation_id: Optional[UUID] = None
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    unrecognized: int = 0
    retained: int = 0
    dead_lettered: int = 0
    discarded: int = 0
    failed_kinds: list[str] = Field(default_factory=list)
    log_write_failed: bool = False
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def ran(self) -> bool:
        """True if the cycle actually replayed entries."""
        return self.status == DrainStatus.COMPLETED
