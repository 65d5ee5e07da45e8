"""
Tests for the Supabase (PostgREST) gateway.

Requests are answered by httpx.MockTransport; nothing leaves the process.
"""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from src.auth import AuthSession
from src.config import SupabaseSettings
from src.models.finance import (
    AssetUpdate,
    DebtStatus,
    DebtUpdate,
    NewAsset,
    NewDebt,
)
from src.services.gateway import (
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
    SupabaseGateway,
)


DEBT_ROW = {
    "id": "debt-1",
    "user_id": "user-1",
    "title": "Loan",
    "creditor": "Bank",
    "amount": 500,
    "currency": "USD",
    "due_date": "2025-06-01",
    "status": "pending",
    "type": "short",
    "created_at": "2025-01-01T10:00:00+00:00",
    "debt_amount_history": [],
}

ASSET_ROW = {
    "id": "asset-1",
    "user_id": "user-1",
    "name": "Coins",
    "type": "gold",
    "amount": 2,
    "created_at": "2025-01-01T10:00:00+00:00",
}


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response):
        self.requests: list[httpx.Request] = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._responses:
            return self._responses.pop(0)
        return httpx.Response(204)


def _gateway(recorder, session=None) -> SupabaseGateway:
    settings = SupabaseSettings(url="https://demo.supabase.co/", anon_key="anon-key")
    client = httpx.AsyncClient(
        base_url=settings.rest_url,
        transport=httpx.MockTransport(recorder),
    )
    return SupabaseGateway(settings=settings, session=session, client=client)


def _body(request: httpx.Request) -> dict:
    return json.loads(request.content)


class TestHeaders:
    """Authorisation headers."""

    def test_anon_key_when_signed_out(self):
        """Test that the anon key doubles as bearer token without a session."""
        recorder = Recorder(httpx.Response(200, json=[]))
        asyncio.run(_gateway(recorder).list_debts("user-1"))

        request = recorder.requests[0]
        assert request.headers["apikey"] == "anon-key"
        assert request.headers["Authorization"] == "Bearer anon-key"

    def test_user_token_when_signed_in(self):
        """Test that the session's access token is used."""
        recorder = Recorder(httpx.Response(200, json=[]))
        session = AuthSession(user_id="user-1", access_token="jwt")
        asyncio.run(_gateway(recorder, session).list_assets("user-1"))

        assert recorder.requests[0].headers["Authorization"] == "Bearer jwt"


class TestDebts:
    """Debt table and amount procedure calls."""

    def test_list_debts_query(self):
        """Test the select, owner filter and ordering."""
        recorder = Recorder(httpx.Response(200, json=[DEBT_ROW]))

        debts = asyncio.run(_gateway(recorder).list_debts("user-1"))

        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/debts"
        assert request.url.params["select"] == "*,debt_amount_history(*)"
        assert request.url.params["user_id"] == "eq.user-1"
        assert request.url.params["order"] == "due_date.asc"
        assert debts[0].amount == Decimal("500")

    def test_create_debt_sends_owner(self):
        """Test that the owner is attached and the created row returned."""
        recorder = Recorder(httpx.Response(201, json=DEBT_ROW))
        new_debt = NewDebt(title="Loan", creditor="Bank", amount=Decimal("500"))

        debt = asyncio.run(_gateway(recorder).create_debt(new_debt, "user-1"))

        request = recorder.requests[0]
        assert request.method == "POST"
        assert request.headers["Prefer"] == "return=representation"
        body = _body(request)
        assert body["user_id"] == "user-1"
        assert body["amount"] == "500"
        assert debt.id == "debt-1"

    def test_update_with_amount_uses_procedure(self):
        """Test basic fields, then the amount procedure, then a refetch."""
        recorder = Recorder(
            httpx.Response(204),
            httpx.Response(204),
            httpx.Response(200, json={**DEBT_ROW, "amount": 450, "status": "paid"}),
        )
        update = DebtUpdate(id="debt-1", status=DebtStatus.PAID, amount=Decimal("450"))

        debt = asyncio.run(_gateway(recorder).update_debt(update))

        patch, rpc, refetch = recorder.requests
        assert patch.method == "PATCH"
        assert patch.url.params["id"] == "eq.debt-1"
        assert _body(patch) == {"status": "paid"}
        assert rpc.url.path == "/rest/v1/rpc/update_debt_amount"
        assert _body(rpc) == {"in_debt_id": "debt-1", "in_new_amount": "450", "in_note": "Updated amount"}
        assert refetch.method == "GET"
        assert debt.amount == Decimal("450")

    def test_update_amount_only_skips_patch(self):
        """Test that an amount-only change does not send an empty PATCH."""
        recorder = Recorder(httpx.Response(204), httpx.Response(200, json=DEBT_ROW))
        update = DebtUpdate(id="debt-1", amount=Decimal("10"), note="Paid back part")

        asyncio.run(_gateway(recorder).update_debt(update))

        assert [r.method for r in recorder.requests] == ["POST", "GET"]
        assert _body(recorder.requests[0])["in_note"] == "Paid back part"

    def test_delete_returns_id(self):
        """Test delete by id filter."""
        recorder = Recorder(httpx.Response(204))

        deleted = asyncio.run(_gateway(recorder).delete_debt("debt-1"))

        assert deleted == "debt-1"
        assert recorder.requests[0].method == "DELETE"
        assert recorder.requests[0].url.params["id"] == "eq.debt-1"


class TestAssets:
    """Asset table and amount procedure calls."""

    def test_list_assets_ordering(self):
        """Test that assets come newest first."""
        recorder = Recorder(httpx.Response(200, json=[ASSET_ROW]))

        assets = asyncio.run(_gateway(recorder).list_assets("user-1"))

        assert recorder.requests[0].url.params["order"] == "created_at.desc"
        assert assets[0].name == "Coins"

    def test_create_and_update_asset(self):
        """Test create and a plain PATCH update."""
        recorder = Recorder(
            httpx.Response(201, json=ASSET_ROW),
            httpx.Response(200, json={**ASSET_ROW, "amount": 3}),
        )
        gateway = _gateway(recorder)

        async def scenario():
            await gateway.create_asset(NewAsset(name="Coins", type="gold", amount=Decimal("2")), "user-1")
            return await gateway.update_asset(AssetUpdate(id="asset-1", amount=Decimal("3")))

        asset = asyncio.run(scenario())

        create, update = recorder.requests
        assert _body(create)["user_id"] == "user-1"
        assert update.method == "PATCH"
        assert _body(update) == {"amount": "3"}
        assert asset.amount == Decimal("3")

    def test_update_asset_without_changes_skips_patch(self):
        """Test that an id-only update refetches the row instead of sending an empty PATCH."""
        recorder = Recorder(httpx.Response(200, json=ASSET_ROW))

        asset = asyncio.run(_gateway(recorder).update_asset(AssetUpdate(id="asset-1")))

        assert [r.method for r in recorder.requests] == ["GET"]
        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/assets"
        assert request.url.params["id"] == "eq.asset-1"
        assert asset.id == "asset-1"

    def test_update_asset_amount_procedure(self):
        """Test the asset amount procedure parameters."""
        recorder = Recorder(httpx.Response(204))

        asyncio.run(_gateway(recorder).update_asset_amount("asset-1", Decimal("5"), "Bought more"))

        request = recorder.requests[0]
        assert request.url.path == "/rest/v1/rpc/update_asset_amount"
        assert _body(request) == {"in_asset_id": "asset-1", "in_new_amount": "5", "in_note": "Bought more"}


class TestErrors:
    """HTTP failures map onto the gateway error taxonomy."""

    def test_server_rejection(self):
        """Test that the server's message is kept."""
        recorder = Recorder(httpx.Response(400, json={"message": "violates check constraint"}))

        with pytest.raises(GatewayError) as exc_info:
            asyncio.run(_gateway(recorder).delete_asset("asset-1"))

        assert exc_info.value.status_code == 400
        assert "violates check constraint" in str(exc_info.value)

    def test_single_row_not_found(self):
        """Test that PostgREST's 406 for a missing single row is NotFound."""
        recorder = Recorder(httpx.Response(406, json={"message": "0 rows"}))

        with pytest.raises(GatewayNotFoundError):
            asyncio.run(_gateway(recorder).get_debt("missing"))

    def test_transport_failure(self):
        """Test that a network failure becomes a connection error."""

        def handler(request):
            raise httpx.ConnectError("no route to host", request=request)

        settings = SupabaseSettings(url="https://demo.supabase.co", anon_key="anon-key")
        client = httpx.AsyncClient(base_url=settings.rest_url, transport=httpx.MockTransport(handler))

        with pytest.raises(GatewayConnectionError):
            asyncio.run(SupabaseGateway(settings=settings, client=client).delete_debt("debt-1"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
