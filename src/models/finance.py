"""
Finance Data Models for Offline Finance Sync

These models define the shape of debts and assets as the hosted database
returns them, and the payloads accepted when creating or changing them.

They are designed to:
1. Enforce the same rules the entry forms enforce (non-empty names, positive amounts)
2. Be serializable to JSON for the offline queue and the REST gateway
3. Round-trip whatever extra columns the server returns

DESIGN DECISION: Server-issued and offline placeholder identifiers are both
plain strings. A record created offline keeps its placeholder id until the
next refetch replaces it with the server's.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Currency(str, Enum):
    """Currencies a debt can be recorded in."""
    USD = "USD"
    TRY = "TRY"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"


class DebtStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class DebtType(str, Enum):
    """Short-term vs long-term debt."""
    SHORT = "short"
    LONG = "long"


class AssetType(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    CRYPTO = "crypto"


class EntityType(str, Enum):
    """
    Entity collections the offline queue knows about.

    The value doubles as the table name and the first element of the
    cache key for the collection.
    """
    DEBT = "debts"
    ASSET = "assets"


# =============================================================================
# STORED RECORDS
# =============================================================================

class DebtAmountHistory(BaseModel):
    """
    One immutable row written by the debt amount procedure.

    The server appends a row every time the current amount of a debt changes.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    debt_id: str
    user_id: str
    amount: Decimal
    note: str = ""
    logged_at: datetime


class Debt(BaseModel):
    """A debt as stored on the server (or synthesized while offline)."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="allow")

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    title: str
    creditor: str
    amount: Decimal
    currency: Currency = Currency.USD
    due_date: Optional[date] = None
    status: DebtStatus = DebtStatus.PENDING
    type: DebtType = DebtType.SHORT
    created_at: Optional[datetime] = None
    debt_amount_history: list[DebtAmountHistory] = Field(default_factory=list)


class Asset(BaseModel):
    """An asset holding (gold, silver, crypto)."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="allow")

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    name: str
    type: AssetType
    amount: Decimal
    created_at: Optional[datetime] = None


# =============================================================================
# WRITE PAYLOADS
# =============================================================================

class NewDebt(BaseModel):
    """
    Payload for creating a debt.

    Mirrors the debt entry form: title and creditor are required and the
    amount must be positive. Identity fields (id, user_id) are not part of
    the payload; they are attached by whoever sends it.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    title: str = Field(..., min_length=1, description="Title is required")
    creditor: str = Field(..., min_length=1, description="Creditor is required")
    amount: Decimal = Field(..., gt=0, description="Amount must be a positive number")
    currency: Currency = Currency.USD
    due_date: Optional[date] = None
    status: DebtStatus = DebtStatus.PENDING
    type: DebtType = DebtType.SHORT


class DebtUpdate(BaseModel):
    """
    Partial update of a debt, keyed by id.

    Basic details are written directly. A changed amount goes through the
    amount procedure so that a history row is appended; ``note`` is the
    text stored on that row.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(..., min_length=1)
    title: Optional[str] = Field(default=None, min_length=1)
    creditor: Optional[str] = Field(default=None, min_length=1)
    due_date: Optional[date] = None
    status: Optional[DebtStatus] = None
    currency: Optional[Currency] = None
    type: Optional[DebtType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)
    note: Optional[str] = None

    def basic_fields(self) -> dict[str, Any]:
        """Fields written with a plain update (everything except id, amount, note)."""
        return self.model_dump(
            mode="json",
            exclude_unset=True,
            exclude={"id", "amount", "note"},
        )

    def record_changes(self) -> dict[str, Any]:
        """Fields to merge into a cached Debt for an optimistic update."""
        return self.model_dump(exclude_unset=True, exclude={"id", "note"})


class NewAsset(BaseModel):
    """Payload for creating an asset."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(..., min_length=1, description="Name is required")
    type: AssetType
    amount: Decimal = Field(..., gt=0, description="Amount must be a positive number")


class AssetUpdate(BaseModel):
    """Partial update of an asset, keyed by id. All fields are written directly."""
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    id: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, min_length=1)
    type: Optional[AssetType] = None
    amount: Optional[Decimal] = Field(default=None, gt=0)

    def basic_fields(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_unset=True, exclude={"id"})

    def record_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True, exclude={"id"})


def collection_key(entity: EntityType, owner_id: str) -> tuple[str, str]:
    """
    Cache key of an owner's collection, e.g. ``("debts", "user-1")``.
    """
    return (entity.value, owner_id)
