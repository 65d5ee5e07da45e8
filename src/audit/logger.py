"""
Audit Logger

DESIGN DECISION: Every significant action of the offline queue is logged.
This provides:
1. Traceability of queued and replayed writes
2. Debugging capability
3. The only trace of a mutation dropped after a failed replay

The audit logger:
- Is async to not block the dispatch or drain flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace all events of one drain cycle
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from src.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from src.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(log_level: str = "INFO") -> None:
    """
    Configure the stdlib backend structlog renders through.

    Call once at process start; structlog filters by the stdlib level.
    """
    logging.basicConfig(format="%(message)s", level=getattr(logging, log_level.upper(), logging.INFO))


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend, if one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("src.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_mutation_applied(
        self,
        kind: str,
        entity_type: str,
        entity_id: str,
        owner_id: str,
    ) -> None:
        """Log a write sent straight to the server."""
        await self.log(AuditEventBuilder.mutation_applied(
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
        ))

    async def log_mutation_rejected(
        self,
        kind: str,
        entity_type: str,
        owner_id: str,
        error_message: str,
    ) -> None:
        """Log a direct write the server refused."""
        await self.log(AuditEventBuilder.mutation_rejected(
            kind=kind,
            entity_type=entity_type,
            owner_id=owner_id,
            error_message=error_message,
        ))

    async def log_mutation_enqueued(
        self,
        kind: str,
        entity_type: str,
        entity_id: str,
        owner_id: str,
        sequence: int,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_enqueued(
            kind=kind,
            entity_type=entity_type,
            entity_id=entity_id,
            owner_id=owner_id,
            sequence=sequence,
        ))

    async def log_sync_started(
        self,
        owner_id: str,
        pending: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.sync_started(
            owner_id=owner_id,
            pending=pending,
            correlation_id=correlation_id,
        ))

    async def log_mutation_replayed(
        self,
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_replayed(
            kind=kind,
            entity_id=entity_id,
            owner_id=owner_id,
            sequence=sequence,
            correlation_id=correlation_id,
        ))

    async def log_mutation_replay_failed(
        self,
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_replay_failed(
            kind=kind,
            entity_id=entity_id,
            owner_id=owner_id,
            sequence=sequence,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_unrecognized_kind(
        self,
        kind: str,
        sequence: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.mutation_kind_unrecognized(
            kind=kind,
            sequence=sequence,
            correlation_id=correlation_id,
        ))

    async def log_mutation_settled(
        self,
        event_type: AuditEventType,
        kind: str,
        entity_id: Optional[str],
        owner_id: str,
        sequence: int,
        attempts: int,
        correlation_id: UUID,
    ) -> None:
        """Log what the failure policy did with a failed mutation."""
        await self.log(AuditEventBuilder.mutation_settled(
            event_type=event_type,
            kind=kind,
            entity_id=entity_id,
            owner_id=owner_id,
            sequence=sequence,
            attempts=attempts,
            correlation_id=correlation_id,
        ))

    async def log_sync_completed(
        self,
        owner_id: str,
        succeeded: int,
        failed: int,
        discarded: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.sync_completed(
            owner_id=owner_id,
            succeeded=succeeded,
            failed=failed,
            discarded=discarded,
            correlation_id=correlation_id,
        ))

    async def log_connectivity_changed(self, offline: bool) -> None:
        await self.log(AuditEventBuilder.connectivity_changed(offline))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a local persistence failure."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a drain cycle and pass it through
    every event of that cycle.
    """
    return uuid4()
