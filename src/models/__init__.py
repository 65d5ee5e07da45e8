"""
Data Models Package

This package contains all Pydantic models used by the offline sync system.
All data flowing through the queue must conform to these schemas.
"""

from src.models.finance import (
    Asset,
    AssetType,
    AssetUpdate,
    Currency,
    Debt,
    DebtAmountHistory,
    DebtStatus,
    DebtType,
    DebtUpdate,
    EntityType,
    NewAsset,
    NewDebt,
    collection_key,
)
from src.models.mutation import (
    DispatchResult,
    DrainReport,
    DrainStatus,
    FailurePolicy,
    Mutation,
    MutationKind,
    ReplayState,
)
from src.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Asset",
    "AssetType",
    "AssetUpdate",
    "Currency",
    "Debt",
    "DebtAmountHistory",
    "DebtStatus",
    "DebtType",
    "DebtUpdate",
    "EntityType",
    "NewAsset",
    "NewDebt",
    "collection_key",
    # Queue models
    "DispatchResult",
    "DrainReport",
    "DrainStatus",
    "FailurePolicy",
    "Mutation",
    "MutationKind",
    "ReplayState",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
