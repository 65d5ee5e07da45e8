"""
Shared fixtures for the offline sync tests.

Everything runs against in-memory fakes; no test talks to a real server
or touches anything outside pytest's tmp_path.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional

import pytest

from src.audit import AuditLogger
from src.auth import AuthSession
from src.models.finance import (
    Asset,
    AssetUpdate,
    Debt,
    DebtUpdate,
    NewAsset,
    NewDebt,
)
from src.models.mutation import FailurePolicy
from src.services.cache import QueryCache
from src.services.gateway import GatewayError, RemoteDataGateway
from src.services.storage import InMemoryAuditStorage, InMemoryKeyValueStore
from src.sync import (
    ConnectivityMonitor,
    DurableMutationLog,
    MutationDispatcher,
    QueueReplayProcessor,
    SyncNotifier,
)


USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeGateway(RemoteDataGateway):
    """
    Records every call in order and keeps created records in dicts.

    ``fail(method, error, times)`` makes a method raise; ``hold()`` makes
    every call wait until ``release()``.
    """

    def __init__(self):
        self.calls: list[tuple[str, Any]] = []
        self.debts: dict[str, Debt] = {}
        self.assets: dict[str, Asset] = {}
        self._failures: dict[str, list[Exception]] = {}
        self._gate: Optional[asyncio.Event] = None
        self._counter = 0

    def fail(self, method: str, error: Optional[Exception] = None, times: int = 1) -> None:
        error = error or GatewayError(f"{method} rejected", 400)
        self._failures.setdefault(method, []).extend([error] * times)

    def hold(self) -> None:
        self._gate = asyncio.Event()

    def release(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def called(self, method: str) -> list[Any]:
        return [arg for name, arg in self.calls if name == method]

    @property
    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    async def _record(self, method: str, arg: Any) -> None:
        self.calls.append((method, arg))
        if self._gate is not None:
            await self._gate.wait()
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}-{self._counter}"

    async def list_debts(self, owner_id: str) -> list[Debt]:
        await self._record("list_debts", owner_id)
        return [d for d in self.debts.values() if d.user_id == owner_id]

    async def create_debt(self, new_debt: NewDebt, owner_id: str) -> Debt:
        await self._record("create_debt", new_debt)
        debt = Debt(
            **new_debt.model_dump(),
            id=self._next_id("debt"),
            user_id=owner_id,
            created_at=datetime.utcnow(),
        )
        self.debts[debt.id] = debt
        return debt

    async def update_debt(self, update: DebtUpdate) -> Debt:
        await self._record("update_debt", update)
        current = self.debts.get(update.id) or Debt(
            id=update.id, user_id=USER_ID, title="?", creditor="?", amount=1
        )
        debt = current.model_copy(update=update.record_changes())
        self.debts[debt.id] = debt
        return debt

    async def delete_debt(self, debt_id: str) -> str:
        await self._record("delete_debt", debt_id)
        self.debts.pop(debt_id, None)
        return debt_id

    async def update_debt_amount(self, debt_id, new_amount, note=None) -> None:
        await self._record("update_debt_amount", (debt_id, new_amount, note))

    async def list_assets(self, owner_id: str) -> list[Asset]:
        await self._record("list_assets", owner_id)
        return [a for a in self.assets.values() if a.user_id == owner_id]

    async def create_asset(self, new_asset: NewAsset, owner_id: str) -> Asset:
        await self._record("create_asset", new_asset)
        asset = Asset(
            **new_asset.model_dump(),
            id=self._next_id("asset"),
            user_id=owner_id,
            created_at=datetime.utcnow(),
        )
        self.assets[asset.id] = asset
        return asset

    async def update_asset(self, update: AssetUpdate) -> Asset:
        await self._record("update_asset", update)
        current = self.assets.get(update.id) or Asset(
            id=update.id, user_id=USER_ID, name="?", type="gold", amount=1
        )
        asset = current.model_copy(update=update.record_changes())
        self.assets[asset.id] = asset
        return asset

    async def delete_asset(self, asset_id: str) -> str:
        await self._record("delete_asset", asset_id)
        self.assets.pop(asset_id, None)
        return asset_id

    async def update_asset_amount(self, asset_id, new_amount, note=None) -> None:
        await self._record("update_asset_amount", (asset_id, new_amount, note))


@pytest.fixture
def session():
    return AuthSession(user_id=USER_ID, access_token="token-1")


@pytest.fixture
def monitor():
    return ConnectivityMonitor(offline=False)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def mutation_log(store):
    return DurableMutationLog(store)


@pytest.fixture
def dead_letter_log(store):
    return DurableMutationLog(store, key="offline_mutation_dead_letter")


@pytest.fixture
def cache():
    return QueryCache()


@pytest.fixture
def notifier():
    return SyncNotifier()


@pytest.fixture
def notifications(notifier):
    """Every notification sent during the test, in order."""
    received = []
    notifier.subscribe(received.append)
    return received


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def dispatcher(session, monitor, gateway, mutation_log, cache, notifier, audit_logger):
    return MutationDispatcher(
        session=session,
        monitor=monitor,
        gateway=gateway,
        mutation_log=mutation_log,
        cache=cache,
        notifier=notifier,
        audit_logger=audit_logger,
    )


@pytest.fixture
def make_processor(session, monitor, gateway, mutation_log, dead_letter_log, cache, notifier, audit_logger):
    """Build a replay processor sharing the test's fakes."""

    def build(
        failure_policy: FailurePolicy = FailurePolicy.DISCARD,
        max_replay_attempts: int = 3,
        interval_seconds: float = 10.0,
    ) -> QueueReplayProcessor:
        return QueueReplayProcessor(
            session=session,
            monitor=monitor,
            gateway=gateway,
            mutation_log=mutation_log,
            cache=cache,
            notifier=notifier,
            audit_logger=audit_logger,
            failure_policy=failure_policy,
            max_replay_attempts=max_replay_attempts,
            dead_letter_log=dead_letter_log,
            interval_seconds=interval_seconds,
        )

    return build


@pytest.fixture
def processor(make_processor):
    return make_processor()
