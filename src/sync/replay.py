"""
Queue Replay Processor

Drains the durable mutation log against the server once connectivity and
identity allow it.

Flow (one drain cycle):
1. Skip if offline, signed out, or a cycle is already running
2. Read the log and remember the highest sequence seen (the cursor)
3. Select the entries issued by the current identity
4. Replay them one at a time, in the order they were issued
5. Apply the failure policy to entries the server rejected
6. Remove everything up to the cursor (other identities' entries included)
7. Invalidate the identity's debt and asset collections

DESIGN DECISIONS:
- The guard is an asyncio.Lock. ``locked()`` is checked and the lock taken
  with no await in between, so two triggers can never both start a cycle.
- A failed entry never stops the cycle. It is reported to the user and the
  audit log, and the next entry is replayed.
- Removal is by cursor, not "clear everything": an entry appended while
  the cycle was waiting on the server survives for the next cycle.
- A create replayed in this cycle maps its placeholder id to the server id;
  later entries of the same cycle are rewritten to the server id before they
  are sent.
"""

import asyncio
from collections.abc import Coroutine
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from src.audit import AuditLogger, create_correlation_id
from src.auth import AuthSession
from src.models.audit import AuditEventType
from src.models.finance import (
    AssetUpdate,
    DebtUpdate,
    EntityType,
    NewAsset,
    NewDebt,
    collection_key,
)
from src.models.mutation import (
    DrainReport,
    DrainStatus,
    FailurePolicy,
    Mutation,
    MutationKind,
    ReplayState,
)
from src.services.cache import QueryCache
from src.services.gateway import GatewayError, RemoteDataGateway
from src.services.storage import StorageError
from src.sync.connectivity import ConnectivityMonitor
from src.sync.dispatcher import DEFAULT_PLACEHOLDER_PREFIX
from src.sync.mutation_log import DurableMutationLog
from src.sync.notifications import SyncNotifier


logger = structlog.get_logger(__name__)


class UnresolvedPlaceholderError(Exception):
    """
    An update or delete targets an offline placeholder id whose create has
    not reached the server in this cycle.
    """

    def __init__(self, kind: str, placeholder_id: str):
        self.kind = kind
        self.placeholder_id = placeholder_id
        super().__init__(
            f"{kind} targets {placeholder_id}, which has not been created on the server"
        )


REPLAY_ERRORS = (GatewayError, ValidationError, UnresolvedPlaceholderError)


class QueueReplayProcessor:
    """
    Background drainer of the offline mutation log.

    Usage:
        processor = QueueReplayProcessor(session, monitor, gateway, log, cache)
        processor.start()     # periodic drains + drain on reconnect
        report = await processor.drain()
        await processor.stop()
    """

    def __init__(
        self,
        session: AuthSession,
        monitor: ConnectivityMonitor,
        gateway: RemoteDataGateway,
        mutation_log: DurableMutationLog,
        cache: QueryCache,
        notifier: Optional[SyncNotifier] = None,
        audit_logger: Optional[AuditLogger] = None,
        failure_policy: FailurePolicy = FailurePolicy.DISCARD,
        max_replay_attempts: int = 3,
        dead_letter_log: Optional[DurableMutationLog] = None,
        interval_seconds: float = 10.0,
        placeholder_prefix: str = DEFAULT_PLACEHOLDER_PREFIX,
    ):
        if failure_policy == FailurePolicy.DEAD_LETTER and dead_letter_log is None:
            raise ValueError("dead_letter_log is required for the dead_letter policy")
        if max_replay_attempts < 1:
            raise ValueError("max_replay_attempts must be at least 1")

        self._session = session
        self._monitor = monitor
        self._gateway = gateway
        self._log = mutation_log
        self._cache = cache
        self._notifier = notifier or SyncNotifier()
        self._audit_logger = audit_logger
        self._failure_policy = failure_policy
        self._max_replay_attempts = max_replay_attempts
        self._dead_letter_log = dead_letter_log
        self._interval_seconds = interval_seconds
        self._placeholder_prefix = placeholder_prefix

        self._lock = asyncio.Lock()
        self._loop_task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None
        self._unsubscribe = None
        self._pending: set[asyncio.Task] = set()

    @property
    def state(self) -> ReplayState:
        return ReplayState.DRAINING if self._lock.locked() else ReplayState.IDLE

    @property
    def failure_policy(self) -> FailurePolicy:
        return self._failure_policy

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    # -------------------------------------------------------------------------
    # Drain cycle
    # -------------------------------------------------------------------------

    async def drain(self) -> DrainReport:
        """
        Run one drain cycle.

        Never raises for a rejected mutation; rejected mutations are counted
        in the report. ``unrecognized`` entries are also counted as failed.

        Returns:
            DrainReport describing what the cycle did (or why it did nothing)
        """
        if self._monitor.is_offline:
            return DrainReport(status=DrainStatus.SKIPPED_OFFLINE, finished_at=datetime.utcnow())
        owner_id = self._session.user_id
        if not owner_id:
            return DrainReport(status=DrainStatus.SKIPPED_UNAUTHENTICATED, finished_at=datetime.utcnow())
        if self._lock.locked():
            logger.debug("drain_skipped_busy", owner_id=owner_id)
            return DrainReport(status=DrainStatus.SKIPPED_BUSY, owner_id=owner_id, finished_at=datetime.utcnow())

        async with self._lock:
            return await self._drain_locked(owner_id)

    async def _drain_locked(self, owner_id: str) -> DrainReport:
        correlation_id = create_correlation_id()
        report = DrainReport(
            status=DrainStatus.COMPLETED,
            owner_id=owner_id,
            correlation_id=correlation_id,
        )

        try:
            entries = await self._log.read_all()
        except StorageError as e:
            logger.error("offline_queue_read_failed", error=str(e))
            await self._audit_storage_error("read offline queue", e, correlation_id)
            report.status = DrainStatus.STORAGE_UNAVAILABLE
            report.finished_at = datetime.utcnow()
            return report

        selected = [m for m in entries if m.owner_id == owner_id]
        if not selected:
            report.status = DrainStatus.EMPTY
            report.finished_at = datetime.utcnow()
            return report

        cursor = max(m.sequence for m in entries)
        report.attempted = len(selected)

        logger.info(
            "sync_started",
            owner_id=owner_id,
            pending=len(selected),
            total=len(entries),
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_sync_started(
                owner_id=owner_id,
                pending=len(selected),
                correlation_id=correlation_id,
            )
        self._notifier.sync_started()

        resolved_ids: dict[str, str] = {}
        failures: list[tuple[Mutation, bool]] = []

        for mutation in selected:
            kind = mutation.known_kind
            if kind is None:
                report.failed += 1
                report.unrecognized += 1
                report.failed_kinds.append(mutation.kind)
                logger.warning(
                    "mutation_kind_unrecognized",
                    kind=mutation.kind,
                    sequence=mutation.sequence,
                )
                if self._audit_logger:
                    await self._audit_logger.log_unrecognized_kind(
                        kind=mutation.kind,
                        sequence=mutation.sequence,
                        correlation_id=correlation_id,
                    )
                self._notifier.sync_item_failed(mutation.kind)
                failures.append((mutation.model_copy(update={"last_error": f"Unknown mutation type: {mutation.kind}"}), False))
                continue

            try:
                entity_id = await self._apply(kind, mutation, resolved_ids)
            except REPLAY_ERRORS as e:
                report.failed += 1
                report.failed_kinds.append(mutation.kind)
                logger.warning(
                    "mutation_replay_failed",
                    kind=mutation.kind,
                    sequence=mutation.sequence,
                    error=str(e),
                )
                if self._audit_logger:
                    await self._audit_logger.log_mutation_replay_failed(
                        kind=mutation.kind,
                        entity_id=mutation.target_id,
                        owner_id=owner_id,
                        sequence=mutation.sequence,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                self._notifier.sync_item_failed(mutation.kind)
                failures.append((mutation.model_copy(update={"last_error": str(e)}), True))
                continue

            report.succeeded += 1
            if self._audit_logger:
                await self._audit_logger.log_mutation_replayed(
                    kind=mutation.kind,
                    entity_id=entity_id,
                    owner_id=owner_id,
                    sequence=mutation.sequence,
                    correlation_id=correlation_id,
                )

        retain = await self._settle_failures(failures, resolved_ids, report, correlation_id)

        try:
            report.discarded = await self._log.discard_through(cursor, retain=retain)
        except StorageError as e:
            # Entries stay in the log and are replayed again next cycle
            report.log_write_failed = True
            logger.error("offline_queue_write_failed", error=str(e), cursor=cursor)
            await self._audit_storage_error("discard replayed mutations", e, correlation_id)

        self._notifier.sync_completed()

        self._cache.invalidate(collection_key(EntityType.DEBT, owner_id))
        self._cache.invalidate(collection_key(EntityType.ASSET, owner_id))

        report.finished_at = datetime.utcnow()
        logger.info(
            "sync_completed",
            owner_id=owner_id,
            succeeded=report.succeeded,
            failed=report.failed,
            discarded=report.discarded,
            retained=report.retained,
            dead_lettered=report.dead_lettered,
            correlation_id=str(correlation_id),
        )
        if self._audit_logger:
            await self._audit_logger.log_sync_completed(
                owner_id=owner_id,
                succeeded=report.succeeded,
                failed=report.failed,
                discarded=report.discarded,
                correlation_id=correlation_id,
            )
        return report

    async def _apply(
        self,
        kind: MutationKind,
        mutation: Mutation,
        resolved_ids: dict[str, str],
    ) -> Optional[str]:
        """
        Send one mutation to the gateway.

        Returns:
            The server-side id of the affected record

        Raises:
            GatewayError: Server rejected the write or was unreachable
            ValidationError: Payload does not fit the kind's model
            UnresolvedPlaceholderError: Target was never created on the server
        """
        payload = dict(mutation.payload)

        if kind.is_create:
            placeholder = payload.get("id")
            if kind == MutationKind.CREATE_DEBT:
                record = await self._gateway.create_debt(NewDebt.model_validate(payload), mutation.owner_id)
            else:
                record = await self._gateway.create_asset(NewAsset.model_validate(payload), mutation.owner_id)
            if placeholder and placeholder != record.id:
                resolved_ids[str(placeholder)] = record.id
            return record.id

        payload["id"] = self._resolve_target(kind, mutation.target_id, resolved_ids)

        if kind == MutationKind.UPDATE_DEBT:
            record = await self._gateway.update_debt(DebtUpdate.model_validate(payload))
            return record.id
        if kind == MutationKind.UPDATE_ASSET:
            record = await self._gateway.update_asset(AssetUpdate.model_validate(payload))
            return record.id
        if kind == MutationKind.DELETE_DEBT:
            return await self._gateway.delete_debt(payload["id"])
        return await self._gateway.delete_asset(payload["id"])

    def _resolve_target(
        self,
        kind: MutationKind,
        target_id: Optional[str],
        resolved_ids: dict[str, str],
    ) -> Optional[str]:
        if target_id is None:
            return None
        if target_id in resolved_ids:
            return resolved_ids[target_id]
        if target_id.startswith(self._placeholder_prefix):
            raise UnresolvedPlaceholderError(kind.value, target_id)
        return target_id

    async def _settle_failures(
        self,
        failures: list[tuple[Mutation, bool]],
        resolved_ids: dict[str, str],
        report: DrainReport,
        correlation_id: UUID,
    ) -> list[Mutation]:
        """
        Apply the failure policy.

        ``failures`` pairs each failed mutation with whether it may be
        retried (unrecognized kinds never are). A target created earlier in
        the cycle is rewritten to its server id before the entry is kept or
        dead-lettered; ``resolved_ids`` does not outlive the cycle.

        Returns:
            Mutations to keep at the head of the log
        """
        retain: list[Mutation] = []
        if self._failure_policy == FailurePolicy.DISCARD:
            return retain

        for mutation, retryable in failures:
            attempts = mutation.attempts + 1
            update: dict[str, Any] = {"attempts": attempts}
            if mutation.target_id in resolved_ids:
                update["payload"] = {**mutation.payload, "id": resolved_ids[mutation.target_id]}
            failed = mutation.model_copy(update=update)

            if self._failure_policy == FailurePolicy.DEAD_LETTER:
                try:
                    await self._dead_letter_log.append(failed)
                except StorageError as e:
                    report.log_write_failed = True
                    logger.error("dead_letter_write_failed", kind=mutation.kind, error=str(e))
                    await self._audit_storage_error("dead-letter mutation", e, correlation_id)
                    continue
                report.dead_lettered += 1
                event_type = AuditEventType.MUTATION_DEAD_LETTERED
            elif retryable and attempts < self._max_replay_attempts:
                retain.append(failed)
                report.retained += 1
                event_type = AuditEventType.MUTATION_RETAINED
            else:
                event_type = AuditEventType.MUTATION_DISCARDED

            if self._audit_logger:
                await self._audit_logger.log_mutation_settled(
                    event_type=event_type,
                    kind=mutation.kind,
                    entity_id=failed.target_id,
                    owner_id=mutation.owner_id,
                    sequence=mutation.sequence,
                    attempts=attempts,
                    correlation_id=correlation_id,
                )
        return retain

    async def _audit_storage_error(
        self,
        operation: str,
        error: StorageError,
        correlation_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(error),
                correlation_id=correlation_id,
            )

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """
        Start the periodic drain loop and listen for reconnects.

        Must be called from a running event loop. Drains run every
        ``interval_seconds``; the first waits a full interval too.
        """
        if self.is_running:
            return
        self._stopping = asyncio.Event()
        self._unsubscribe = self._monitor.subscribe(self._handle_connectivity)
        self._loop_task = asyncio.get_running_loop().create_task(self._run_periodically())
        logger.info("replay_started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        """
        Stop triggering drains and wait for the ones already running.
        """
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._stopping:
            self._stopping.set()
        if self._loop_task:
            await self._loop_task
            self._loop_task = None
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        logger.info("replay_stopped")

    async def _run_periodically(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                await self.drain_safely()

    async def drain_safely(self) -> Optional[DrainReport]:
        """drain(), but unexpected errors are logged instead of raised."""
        try:
            return await self.drain()
        except Exception as e:
            logger.exception("drain_failed", error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"operation": "drain"},
                )
            return None

    def _handle_connectivity(self, offline: bool) -> None:
        self._spawn(self._on_connectivity_changed(offline))

    async def _on_connectivity_changed(self, offline: bool) -> None:
        if self._audit_logger:
            await self._audit_logger.log_connectivity_changed(offline)
        if not offline:
            await self.drain_safely()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
