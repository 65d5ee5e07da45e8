"""
Audit Models for Offline Finance Sync

Every significant action of the offline queue is logged for audit purposes.
This provides:
1. Traceability of what was queued, replayed, and dropped
2. Debugging information when a sync goes wrong
3. The only record of a mutation the server rejected during replay

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Each step of dispatch and replay has its own event type.
    """
    # Dispatch
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_REJECTED = "mutation_rejected"
    MUTATION_ENQUEUED = "mutation_enqueued"

    # Replay
    SYNC_STARTED = "sync_started"
    MUTATION_REPLAYED = "mutation_replayed"
    MUTATION_REPLAY_FAILED = "mutation_replay_failed"
    MUTATION_KIND_UNRECOGNIZED = "mutation_kind_unrecognized"
    MUTATION_RETAINED = "mutation_retained"
    MUTATION_DEAD_LETTERED = "mutation_dead_lettered"
    MUTATION_DISCARDED = "mutation_discarded"
    SYNC_COMPLETED = "sync_completed"

    # Environment
    CONNECTIVITY_CHANGED = "connectivity_changed"
    STORAGE_ERROR = "storage_error"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'debts', 'assets', 'mutation')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity (server id or offline placeholder)"
    )
    owner_id: Optional[str] = Field(
        default=None,
        description="Identity the event was recorded for"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one drain cycle)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "owner_id": self.owner_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.mutation_enqueued(kind, entity_id, owner_id)
        event = AuditEventBuilder.sync_completed(owner_id, counts, correlation_id)
    """

    @staticmethod
    def mutation_applied(
        kind: str,
        entity_type: str,
        entity_id: str,
        owner_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_APPLIED,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            description=f"Applied {kind} directly",
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        kind: str,
        entity_type: str,
        owner_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            owner_id=owner_id,
            description=f"Server rejected {kind}",
            error_message=error_message,
            details={"kind": kind},
            is_user_action=True,
        )

    @staticmethod
    def mutation_enqueued(
        kind: str,
        entity_type: str,
        entity_id: str,
        owner_id: str,
        sequence: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_ENQUEUED,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            description=f"Queued {kind} for replay",
            details={
                "kind": kind,
                "sequence": sequence,
            },
            is_user_action=True,
        )

    @staticmethod
    def sync_started(
        owner_id: str,
        pending: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_STARTED,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Processing {pending} offline mutations",
            details={"pending": pending},
        )

    @staticmethod
    def mutation_replayed(
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REPLAYED,
            entity_type="mutation",
            entity_id=entity_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Replayed {kind}",
            details={
                "kind": kind,
                "sequence": sequence,
            },
        )

    @staticmethod
    def mutation_replay_failed(
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REPLAY_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="mutation",
            entity_id=entity_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"Failed to process mutation: {kind}",
            error_message=error_message,
            details={
                "kind": kind,
                "sequence": sequence,
            },
        )

    @staticmethod
    def mutation_kind_unrecognized(
        kind: str,
        sequence: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_KIND_UNRECOGNIZED,
            severity=AuditSeverity.WARNING,
            entity_type="mutation",
            correlation_id=correlation_id,
            description=f"Unknown mutation type: {kind}",
            details={
                "kind": kind,
                "sequence": sequence,
            },
        )

    @staticmethod
    def mutation_settled(
        event_type: AuditEventType,
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        attempts: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        """Retained, dead-lettered, or discarded after a failed replay."""
        verb = {
            AuditEventType.MUTATION_RETAINED: "Kept for another attempt",
            AuditEventType.MUTATION_DEAD_LETTERED: "Moved to dead-letter log",
            AuditEventType.MUTATION_DISCARDED: "Dropped after failed replay",
        }[event_type]
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.WARNING,
            entity_type="mutation",
            entity_id=entity_id,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description=f"{verb}: {kind}",
            details={
                "kind": kind,
                "sequence": sequence,
                "attempts": attempts,
            },
        )

    @staticmethod
    def sync_completed(
        owner_id: str,
        succeeded: int,
        failed: int,
        discarded: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            owner_id=owner_id,
            correlation_id=correlation_id,
            description="Offline queue processed",
            details={
                "succeeded": succeeded,
                "failed": failed,
                "discarded": discarded,
            },
        )

    @staticmethod
    def connectivity_changed(offline: bool) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CONNECTIVITY_CHANGED,
            description="Went offline" if offline else "Back online",
            details={"offline": offline},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Local storage failed during {operation}",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
