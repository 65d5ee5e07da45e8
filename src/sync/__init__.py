"""Offline write queue: connectivity, durable log, dispatch and replay."""

from src.sync.connectivity import ConnectivityMonitor, NetworkState, ReachabilityProbe
from src.sync.dispatcher import MutationDispatcher
from src.sync.mutation_log import DurableMutationLog
from src.sync.notifications import (
    NotificationLevel,
    SyncNotification,
    SyncNotifier,
)
from src.sync.replay import QueueReplayProcessor, UnresolvedPlaceholderError

__all__ = [
    "ConnectivityMonitor",
    "DurableMutationLog",
    "MutationDispatcher",
    "NetworkState",
    "NotificationLevel",
    "QueueReplayProcessor",
    "ReachabilityProbe",
    "SyncNotification",
    "SyncNotifier",
    "UnresolvedPlaceholderError",
]
