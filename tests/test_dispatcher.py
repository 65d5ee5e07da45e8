"""
Tests for the mutation dispatch core.

Online writes must reach the gateway and invalidate the cache; offline
writes must be queued, patched into the cache, and never touch the network.
"""

import asyncio
from decimal import Decimal

import pytest

from src.auth import AuthRequiredError
from src.models.audit import AuditEventType
from src.models.finance import (
    Asset,
    AssetType,
    AssetUpdate,
    Debt,
    DebtStatus,
    DebtUpdate,
    EntityType,
    NewAsset,
    NewDebt,
    collection_key,
)
from src.models.mutation import MutationKind
from src.services.gateway import GatewayError
from src.services.storage import StorageError
from src.sync.notifications import SAVED_OFFLINE

from conftest import USER_ID


DEBTS_KEY = collection_key(EntityType.DEBT, USER_ID)
ASSETS_KEY = collection_key(EntityType.ASSET, USER_ID)


def _loan() -> NewDebt:
    return NewDebt(title="Loan", creditor="Bank", amount=Decimal("500"))


def _cached_debt(debt_id: str = "debt-9") -> Debt:
    return Debt(id=debt_id, user_id=USER_ID, title="Car", creditor="Dealer", amount=Decimal("900"))


class TestOnlineDispatch:
    """Writes made while online."""

    def test_create_calls_gateway_and_invalidates(self, dispatcher, gateway, cache, mutation_log):
        """Test that an online create is sent and the collection marked stale."""
        cache.set_data(DEBTS_KEY, [])

        result = asyncio.run(dispatcher.create_debt(_loan()))

        assert not result.queued
        assert result.entity_id == "debt-1"
        assert gateway.call_names == ["create_debt"]
        assert cache.is_stale(DEBTS_KEY)
        assert asyncio.run(mutation_log.read_all()) == []

    def test_update_and_delete_are_sent(self, dispatcher, gateway):
        """Test that updates and deletes go to the matching gateway call."""

        async def scenario():
            await dispatcher.update_debt(DebtUpdate(id="d1", status=DebtStatus.PAID))
            await dispatcher.delete_asset("a1")

        asyncio.run(scenario())

        assert gateway.call_names == ["update_debt", "delete_asset"]
        assert gateway.called("delete_asset") == ["a1"]

    def test_gateway_error_propagates(self, dispatcher, gateway, cache, audit_storage):
        """Test that a rejected online write reaches the caller unchanged."""
        error = GatewayError("duplicate key", 409)
        gateway.fail("create_asset", error)
        cache.set_data(ASSETS_KEY, [])

        with pytest.raises(GatewayError) as exc_info:
            asyncio.run(dispatcher.create_asset(NewAsset(name="Coins", type="gold", amount=Decimal("2"))))

        assert exc_info.value is error
        assert not cache.is_stale(ASSETS_KEY)
        assert [e.event_type for e in audit_storage.events] == [AuditEventType.MUTATION_REJECTED]


class TestOfflineDispatch:
    """Writes made while offline."""

    def test_create_debt_is_visible_without_network(self, dispatcher, monitor, gateway, cache, mutation_log):
        """Test the optimistic create: queued, cached, no gateway call."""
        monitor.set_offline(True)
        cache.set_data(DEBTS_KEY, [_cached_debt()])

        result = asyncio.run(dispatcher.create_debt(_loan()))

        assert result.queued
        assert result.entity_id.startswith("offline_")
        assert gateway.calls == []

        cached = cache.get_data(DEBTS_KEY)
        assert [d.id for d in cached] == ["debt-9", result.entity_id]
        assert cached[1].title == "Loan"
        assert cached[1].user_id == USER_ID
        assert cached[1].created_at is not None

        queued = asyncio.run(mutation_log.read_all())
        assert len(queued) == 1
        assert queued[0].kind == MutationKind.CREATE_DEBT.value
        assert queued[0].owner_id == USER_ID
        assert queued[0].payload["id"] == result.entity_id
        assert queued[0].payload["user_id"] == USER_ID
        assert queued[0].payload["amount"] == "500"

    def test_create_into_empty_cache(self, dispatcher, monitor, cache):
        """Test that a create with nothing cached yields a one-item collection."""
        monitor.set_offline(True)

        result = asyncio.run(dispatcher.create_asset(NewAsset(name="BTC", type=AssetType.CRYPTO, amount=Decimal("0.5"))))

        cached = cache.get_data(ASSETS_KEY)
        assert len(cached) == 1
        assert isinstance(cached[0], Asset)
        assert cached[0].id == result.entity_id

    def test_update_merges_into_cached_record(self, dispatcher, monitor, cache, mutation_log):
        """Test that only the changed fields of the cached record move."""
        monitor.set_offline(True)
        cache.set_data(DEBTS_KEY, [_cached_debt("d1"), _cached_debt("d2")])

        result = asyncio.run(dispatcher.update_debt(DebtUpdate(id="d1", amount=Decimal("750"), note="Paid some")))

        cached = {d.id: d for d in cache.get_data(DEBTS_KEY)}
        assert cached["d1"].amount == Decimal("750")
        assert cached["d1"].title == "Car"
        assert cached["d2"].amount == Decimal("900")
        assert result.record.amount == Decimal("750")

        queued = asyncio.run(mutation_log.read_all())
        assert queued[0].payload == {"id": "d1", "amount": "750", "note": "Paid some"}

    def test_update_of_uncached_record_is_still_queued(self, dispatcher, monitor, cache, mutation_log):
        """Test that a missing record leaves the cache as is but queues the intent."""
        monitor.set_offline(True)

        result = asyncio.run(dispatcher.update_asset(AssetUpdate(id="a1", name="Bars")))

        assert result.record is None
        assert cache.get_data(ASSETS_KEY) == []
        assert len(asyncio.run(mutation_log.read_all())) == 1

    def test_delete_removes_from_cache(self, dispatcher, monitor, cache, mutation_log):
        """Test that an offline delete hides the record immediately."""
        monitor.set_offline(True)
        cache.set_data(DEBTS_KEY, [_cached_debt("d1"), _cached_debt("d2")])

        asyncio.run(dispatcher.delete_debt("d1"))

        assert [d.id for d in cache.get_data(DEBTS_KEY)] == ["d2"]
        queued = asyncio.run(mutation_log.read_all())
        assert queued[0].kind == "delete_debt"
        assert queued[0].payload == {"id": "d1"}

    def test_offline_patch_keeps_collection_fresh(self, dispatcher, monitor, cache):
        """Test that a patch does not mark the collection stale."""
        monitor.set_offline(True)
        cache.set_data(DEBTS_KEY, [])
        asyncio.run(dispatcher.create_debt(_loan()))
        assert not cache.is_stale(DEBTS_KEY)

    def test_user_is_told_the_change_was_saved(self, dispatcher, monitor, notifications, audit_storage):
        """Test the offline notification and audit trail."""
        monitor.set_offline(True)

        asyncio.run(dispatcher.delete_asset("a1"))

        assert [n.title for n in notifications] == [SAVED_OFFLINE]
        assert [e.event_type for e in audit_storage.events] == [AuditEventType.MUTATION_ENQUEUED]

    def test_storage_failure_leaves_cache_untouched(self, dispatcher, monitor, store, cache, notifications):
        """Test that an intent that could not be persisted is not shown."""
        monitor.set_offline(True)
        cache.set_data(DEBTS_KEY, [])
        store.fail_writes = True

        with pytest.raises(StorageError):
            asyncio.run(dispatcher.create_debt(_loan()))

        assert cache.get_data(DEBTS_KEY) == []
        assert notifications == []

    def test_placeholder_prefix(self, dispatcher):
        """Test placeholder ids are recognisable."""
        placeholder = dispatcher.new_placeholder_id()
        assert dispatcher.is_placeholder(placeholder)
        assert not dispatcher.is_placeholder("debt-1")


class TestAuthentication:
    """Every entry point requires a signed-in user."""

    @pytest.mark.parametrize("offline", [False, True])
    def test_signed_out_write_is_rejected(self, dispatcher, session, monitor, gateway, mutation_log, offline):
        """Test that nothing is sent or queued without an identity."""
        session.sign_out()
        monitor.set_offline(offline)

        with pytest.raises(AuthRequiredError):
            asyncio.run(dispatcher.create_debt(_loan()))

        assert gateway.calls == []
        assert asyncio.run(mutation_log.read_all()) == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
