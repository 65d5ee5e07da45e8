"""
Mutation Dispatch Core

Entry point for every debt/asset write. Decides per call whether to send
the write to the server now or to queue it for replay.

Flow (online):
1. Require a signed-in user
2. Call the gateway; on success invalidate the owner's cached collection
3. Gateway errors propagate unchanged so the caller can show them

Flow (offline):
1. Require a signed-in user
2. Creates get a placeholder id (``offline_<uuid>``) and the owner's id
3. Append the intent to the durable mutation log
4. Patch the cached collection to the intended post-state
5. Return at once - no network I/O on this path

DESIGN DECISION: The log append happens BEFORE the cache patch, and a failed
append propagates. If the intent could not be persisted, the UI must not
show a change that will never reach the server.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Optional, TypeVar
from uuid import uuid4

from src.audit import AuditLogger
from src.auth import AuthSession
from src.models.finance import (
    Asset,
    AssetUpdate,
    Debt,
    DebtUpdate,
    NewAsset,
    NewDebt,
    collection_key,
)
from src.models.mutation import DispatchResult, Mutation, MutationKind
from src.services.cache import QueryCache
from src.services.gateway import GatewayError, RemoteDataGateway
from src.services.storage import StorageError
from src.sync.connectivity import ConnectivityMonitor
from src.sync.mutation_log import DurableMutationLog
from src.sync.notifications import SyncNotifier


DEFAULT_PLACEHOLDER_PREFIX = "offline_"

T = TypeVar("T")


class MutationDispatcher:
    """
    Applies writes directly when online, or queues them and patches the
    cache optimistically when offline.
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
        placeholder_prefix: str = DEFAULT_PLACEHOLDER_PREFIX,
    ):
        self._session = session
        self._monitor = monitor
        self._gateway = gateway
        self._log = mutation_log
        self._cache = cache
        self._notifier = notifier or SyncNotifier()
        self._audit_logger = audit_logger
        self._placeholder_prefix = placeholder_prefix

    def new_placeholder_id(self) -> str:
        return f"{self._placeholder_prefix}{uuid4()}"

    def is_placeholder(self, entity_id: str) -> bool:
        return entity_id.startswith(self._placeholder_prefix)

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    async def create_debt(self, new_debt: NewDebt) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            record = await self._apply_online(
                MutationKind.CREATE_DEBT,
                owner_id,
                lambda: self._gateway.create_debt(new_debt, owner_id),
            )
            return DispatchResult(
                queued=False,
                kind=MutationKind.CREATE_DEBT,
                entity_id=record.id,
                record=record,
            )

        placeholder = self.new_placeholder_id()
        record = Debt(
            **new_debt.model_dump(),
            id=placeholder,
            user_id=owner_id,
            created_at=datetime.utcnow(),
            debt_amount_history=[],
        )
        return await self._queue_create(MutationKind.CREATE_DEBT, owner_id, new_debt.model_dump(mode="json"), record)

    async def update_debt(self, update: DebtUpdate) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            record = await self._apply_online(
                MutationKind.UPDATE_DEBT,
                owner_id,
                lambda: self._gateway.update_debt(update),
            )
            return DispatchResult(
                queued=False,
                kind=MutationKind.UPDATE_DEBT,
                entity_id=update.id,
                record=record,
            )

        return await self._queue_update(
            MutationKind.UPDATE_DEBT,
            owner_id,
            update.id,
            update.model_dump(mode="json", exclude_unset=True),
            update.record_changes(),
        )

    async def delete_debt(self, debt_id: str) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            await self._apply_online(
                MutationKind.DELETE_DEBT,
                owner_id,
                lambda: self._gateway.delete_debt(debt_id),
            )
            return DispatchResult(queued=False, kind=MutationKind.DELETE_DEBT, entity_id=debt_id)

        return await self._queue_delete(MutationKind.DELETE_DEBT, owner_id, debt_id)

    # -------------------------------------------------------------------------
    # Assets
    # -------------------------------------------------------------------------

    async def create_asset(self, new_asset: NewAsset) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            record = await self._apply_online(
                MutationKind.CREATE_ASSET,
                owner_id,
                lambda: self._gateway.create_asset(new_asset, owner_id),
            )
            return DispatchResult(
                queued=False,
                kind=MutationKind.CREATE_ASSET,
                entity_id=record.id,
                record=record,
            )

        placeholder = self.new_placeholder_id()
        record = Asset(
            **new_asset.model_dump(),
            id=placeholder,
            user_id=owner_id,
            created_at=datetime.utcnow(),
        )
        return await self._queue_create(MutationKind.CREATE_ASSET, owner_id, new_asset.model_dump(mode="json"), record)

    async def update_asset(self, update: AssetUpdate) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            record = await self._apply_online(
                MutationKind.UPDATE_ASSET,
                owner_id,
                lambda: self._gateway.update_asset(update),
            )
            return DispatchResult(
                queued=False,
                kind=MutationKind.UPDATE_ASSET,
                entity_id=update.id,
                record=record,
            )

        return await self._queue_update(
            MutationKind.UPDATE_ASSET,
            owner_id,
            update.id,
            update.model_dump(mode="json", exclude_unset=True),
            update.record_changes(),
        )

    async def delete_asset(self, asset_id: str) -> DispatchResult:
        owner_id = self._session.require_user_id()

        if not self._monitor.is_offline:
            await self._apply_online(
                MutationKind.DELETE_ASSET,
                owner_id,
                lambda: self._gateway.delete_asset(asset_id),
            )
            return DispatchResult(queued=False, kind=MutationKind.DELETE_ASSET, entity_id=asset_id)

        return await self._queue_delete(MutationKind.DELETE_ASSET, owner_id, asset_id)

    # -------------------------------------------------------------------------
    # Shared paths
    # -------------------------------------------------------------------------

    async def _apply_online(
        self,
        kind: MutationKind,
        owner_id: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        entity = kind.entity
        try:
            result = await call()
        except GatewayError as e:
            if self._audit_logger:
                await self._audit_logger.log_mutation_rejected(
                    kind=kind.value,
                    entity_type=entity.value,
                    owner_id=owner_id,
                    error_message=str(e),
                )
            raise

        self._cache.invalidate(collection_key(entity, owner_id))

        if self._audit_logger:
            entity_id = result if isinstance(result, str) else getattr(result, "id", "")
            await self._audit_logger.log_mutation_applied(
                kind=kind.value,
                entity_type=entity.value,
                entity_id=entity_id,
                owner_id=owner_id,
            )
        return result

    async def _enqueue(
        self,
        kind: MutationKind,
        owner_id: str,
        payload: dict[str, Any],
    ) -> Mutation:
        mutation = Mutation(kind=kind.value, owner_id=owner_id, payload=payload)
        try:
            stored = await self._log.append(mutation)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_error(
                    operation=f"enqueue {kind.value}",
                    error_message=str(e),
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_mutation_enqueued(
                kind=kind.value,
                entity_type=kind.entity.value,
                entity_id=stored.target_id or "",
                owner_id=owner_id,
                sequence=stored.sequence,
            )
        return stored

    async def _queue_create(
        self,
        kind: MutationKind,
        owner_id: str,
        fields: dict[str, Any],
        record: Any,
    ) -> DispatchResult:
        payload = {**fields, "id": record.id, "user_id": owner_id}
        await self._enqueue(kind, owner_id, payload)

        self._cache.patch(
            collection_key(kind.entity, owner_id),
            lambda records: [*records, record],
        )
        self._notifier.saved_offline()
        return DispatchResult(queued=True, kind=kind, entity_id=record.id, record=record)

    async def _queue_update(
        self,
        kind: MutationKind,
        owner_id: str,
        entity_id: str,
        payload: dict[str, Any],
        changes: dict[str, Any],
    ) -> DispatchResult:
        await self._enqueue(kind, owner_id, {**payload, "id": entity_id})

        patched: list[Any] = []

        def merge(records: list) -> list:
            merged = []
            for item in records:
                if item.id == entity_id:
                    item = item.model_copy(update=changes)
                    patched.append(item)
                merged.append(item)
            return merged

        self._cache.patch(collection_key(kind.entity, owner_id), merge)
        self._notifier.saved_offline()
        return DispatchResult(
            queued=True,
            kind=kind,
            entity_id=entity_id,
            record=patched[0] if patched else None,
        )

    async def _queue_delete(
        self,
        kind: MutationKind,
        owner_id: str,
        entity_id: str,
    ) -> DispatchResult:
        await self._enqueue(kind, owner_id, {"id": entity_id})

        self._cache.patch(
            collection_key(kind.entity, owner_id),
            lambda records: [item for item in records if item.id != entity_id],
        )
        self._notifier.saved_offline()
        return DispatchResult(queued=True, kind=kind, entity_id=entity_id)
