"""
Supabase Gateway Implementation

Talks to the hosted Postgres through its PostgREST endpoint (``/rest/v1``).

DESIGN DECISION: We use httpx directly instead of a full Supabase SDK because:
1. Only a handful of table and RPC calls are needed
2. httpx gives an async client with explicit timeouts
3. Tests can swap the transport for httpx.MockTransport

Writes are NOT retried here. A failed write surfaces immediately to the
caller (the user sees it, or the replay processor records it); reads used
for refetching are retried on connection errors since they are harmless to
repeat.
"""

from decimal import Decimal
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.auth import AuthSession
from src.config import SupabaseSettings, get_settings
from src.models.finance import (
    Asset,
    AssetUpdate,
    Debt,
    DebtUpdate,
    NewAsset,
    NewDebt,
)
from src.services.gateway.interface import (
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
    RemoteDataGateway,
)


DEBT_SELECT = "*,debt_amount_history(*)"
DEFAULT_AMOUNT_NOTE = "Updated amount"

# PostgREST returns a single JSON object (instead of an array) for this media type,
# and 406 when the filter matched no row.
SINGLE_OBJECT = "application/vnd.pgrst.object+json"

_read_retry = retry(
    retry=retry_if_exception_type(GatewayConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=5),
    reraise=True,
)


class SupabaseGateway(RemoteDataGateway):
    """
    RemoteDataGateway backed by Supabase PostgREST.

    Requests are authorised with the signed-in user's access token when a
    session is available, otherwise with the anon key.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        session: Optional[AuthSession] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._session = session
        self._client = client or httpx.AsyncClient(
            base_url=self._settings.rest_url,
            timeout=self._settings.request_timeout_seconds,
        )

    @property
    def rest_url(self) -> str:
        return self._settings.rest_url

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, single: bool = False, prefer: Optional[str] = None) -> dict[str, str]:
        token = None
        if self._session is not None:
            token = self._session.access_token
        headers = {
            "apikey": self._settings.anon_key,
            "Authorization": f"Bearer {token or self._settings.anon_key}",
            "Content-Type": "application/json",
        }
        if single:
            headers["Accept"] = SINGLE_OBJECT
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Any = None,
        single: bool = False,
        prefer: Optional[str] = None,
    ) -> Any:
        """
        Send one REST call and decode the JSON body.

        Raises:
            GatewayConnectionError: Transport failure or timeout
            GatewayNotFoundError: Single-object request matched nothing
            GatewayError: Any other non-2xx response
        """
        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=self._headers(single=single, prefer=prefer),
            )
        except httpx.TransportError as e:
            raise GatewayConnectionError(f"Could not reach Supabase: {e}") from e

        if response.status_code == 404 or (single and response.status_code == 406):
            raise GatewayNotFoundError(self._error_message(response), response.status_code)
        if response.is_error:
            raise GatewayError(self._error_message(response), response.status_code)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    @_read_retry
    async def list_debts(self, owner_id: str) -> list[Debt]:
        rows = await self._request(
            "GET",
            "/debts",
            params={
                "select": DEBT_SELECT,
                "user_id": f"eq.{owner_id}",
                "order": "due_date.asc",
            },
        )
        return [Debt.model_validate(row) for row in rows or []]

    async def get_debt(self, debt_id: str) -> Debt:
        row = await self._request(
            "GET",
            "/debts",
            params={"select": DEBT_SELECT, "id": f"eq.{debt_id}"},
            single=True,
        )
        return Debt.model_validate(row)

    async def create_debt(self, new_debt: NewDebt, owner_id: str) -> Debt:
        body = new_debt.model_dump(mode="json")
        body["user_id"] = owner_id
        row = await self._request(
            "POST",
            "/debts",
            params={"select": DEBT_SELECT},
            json=body,
            single=True,
            prefer="return=representation",
        )
        return Debt.model_validate(row)

    async def update_debt(self, update: DebtUpdate) -> Debt:
        basic = update.basic_fields()
        if basic:
            await self._request(
                "PATCH",
                "/debts",
                params={"id": f"eq.{update.id}"},
                json=basic,
                prefer="return=minimal",
            )
        if update.amount is not None:
            await self.update_debt_amount(
                update.id,
                update.amount,
                update.note or DEFAULT_AMOUNT_NOTE,
            )
        return await self.get_debt(update.id)

    async def delete_debt(self, debt_id: str) -> str:
        await self._request("DELETE", "/debts", params={"id": f"eq.{debt_id}"})
        return debt_id

    async def update_debt_amount(
        self,
        debt_id: str,
        new_amount: Decimal,
        note: str,
    ) -> None:
        await self._request(
            "POST",
            "/rpc/update_debt_amount",
            json={
                "in_debt_id": debt_id,
                "in_new_amount": str(new_amount),
                "in_note": note,
            },
        )

    # -------------------------------------------------------------------------
    # Assets
    # -------------------------------------------------------------------------

    @_read_retry
    async def list_assets(self, owner_id: str) -> list[Asset]:
        rows = await self._request(
            "GET",
            "/assets",
            params={
                "select": "*",
                "user_id": f"eq.{owner_id}",
                "order": "created_at.desc",
            },
        )
        return [Asset.model_validate(row) for row in rows or []]

    async def create_asset(self, new_asset: NewAsset, owner_id: str) -> Asset:
        body = new_asset.model_dump(mode="json")
        body["user_id"] = owner_id
        row = await self._request(
            "POST",
            "/assets",
            params={"select": "*"},
            json=body,
            single=True,
            prefer="return=representation",
        )
        return Asset.model_validate(row)

    async def get_asset(self, asset_id: str) -> Asset:
        row = await self._request(
            "GET",
            "/assets",
            params={"select": "*", "id": f"eq.{asset_id}"},
            single=True,
        )
        return Asset.model_validate(row)

    async def update_asset(self, update: AssetUpdate) -> Asset:
        basic = update.basic_fields()
        if not basic:
            return await self.get_asset(update.id)
        row = await self._request(
            "PATCH",
            "/assets",
            params={"id": f"eq.{update.id}", "select": "*"},
            json=basic,
            single=True,
            prefer="return=representation",
        )
        return Asset.model_validate(row)

    async def delete_asset(self, asset_id: str) -> str:
        await self._request("DELETE", "/assets", params={"id": f"eq.{asset_id}"})
        return asset_id

    async def update_asset_amount(
        self,
        asset_id: str,
        new_amount: Decimal,
        note: str,
    ) -> None:
        await self._request(
            "POST",
            "/rpc/update_asset_amount",
            json={
                "in_asset_id": asset_id,
                "in_new_amount": str(new_amount),
                "in_note": note,
            },
        )
