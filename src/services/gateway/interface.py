"""
Remote Data Gateway Interface

DESIGN DECISION: The hosted database is reached only through this interface.
The dispatch core and the replay processor depend on it, never on a concrete
HTTP client, so tests can substitute an in-memory fake and the backend can
change without touching queue logic.

Amount changes are special: each entity type has one server procedure that
atomically sets the current amount and appends an immutable history row.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from src.models.finance import (
    Asset,
    AssetUpdate,
    Debt,
    DebtUpdate,
    NewAsset,
    NewDebt,
)


class RemoteDataGateway(ABC):
    """CRUD and amount procedures for debts and assets."""

    # -------------------------------------------------------------------------
    # Debts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_debts(self, owner_id: str) -> list[Debt]:
        """All debts of an owner, with amount history, earliest due date first."""
        pass

    @abstractmethod
    async def create_debt(self, new_debt: NewDebt, owner_id: str) -> Debt:
        """
        Insert a debt owned by ``owner_id``.

        Returns:
            The stored record with its server-issued id

        Raises:
            GatewayError: If the server rejects the insert
        """
        pass

    @abstractmethod
    async def update_debt(self, update: DebtUpdate) -> Debt:
        """
        Apply a partial update.

        Basic fields are updated directly; a changed amount goes through
        ``update_debt_amount`` so a history row is written.

        Raises:
            GatewayNotFoundError: If the debt does not exist
            GatewayError: If the server rejects the update
        """
        pass

    @abstractmethod
    async def delete_debt(self, debt_id: str) -> str:
        """Delete a debt. Returns the deleted id."""
        pass

    @abstractmethod
    async def update_debt_amount(
        self,
        debt_id: str,
        new_amount: Decimal,
        note: str,
    ) -> None:
        """Set the current amount and append a history row, atomically."""
        pass

    # -------------------------------------------------------------------------
    # Assets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_assets(self, owner_id: str) -> list[Asset]:
        """All assets of an owner, newest first."""
        pass

    @abstractmethod
    async def create_asset(self, new_asset: NewAsset, owner_id: str) -> Asset:
        pass

    @abstractmethod
    async def update_asset(self, update: AssetUpdate) -> Asset:
        pass

    @abstractmethod
    async def delete_asset(self, asset_id: str) -> str:
        pass

    @abstractmethod
    async def update_asset_amount(
        self,
        asset_id: str,
        new_amount: Decimal,
        note: str,
    ) -> None:
        pass


class GatewayError(Exception):
    """
    The remote store rejected an operation.

    Carries the HTTP status and the server's own message where available,
    so it can be shown to the user as is.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class GatewayNotFoundError(GatewayError):
    """The targeted record does not exist (or is not visible to this user)."""
    pass


class GatewayConnectionError(GatewayError):
    """The remote store could not be reached."""
    pass
