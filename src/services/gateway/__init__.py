"""Remote data gateway package."""

from src.services.gateway.interface import (
    GatewayConnectionError,
    GatewayError,
    GatewayNotFoundError,
    RemoteDataGateway,
)
from src.services.gateway.supabase import SupabaseGateway

__all__ = [
    "GatewayConnectionError",
    "GatewayError",
    "GatewayNotFoundError",
    "RemoteDataGateway",
    "SupabaseGateway",
]
