"""
Main Orchestrator for Offline Finance Sync

This module ties together all the components and exposes the two
end-to-end flows:
1. Write (intent → online gateway call | offline log + optimistic cache)
2. Sync (timer / reconnect → replay queued intents → refresh collections)

DESIGN DECISION: Every component is built exactly once, here, and handed
its collaborators. The session, monitor, log and cache instances seen by the
dispatcher are the very same ones seen by the replay processor; nothing
reaches for a module-level singleton except the cached settings.
"""

import asyncio
from typing import Optional

import structlog

from src.audit import AuditLogger, configure_logging
from src.auth import AuthSession
from src.config import Settings, get_settings
from src.models.finance import Asset, Debt, EntityType, collection_key
from src.services.cache import QueryCache
from src.services.gateway import RemoteDataGateway, SupabaseGateway
from src.services.storage import (
    AuditStorageInterface,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from src.sync import (
    ConnectivityMonitor,
    DurableMutationLog,
    MutationDispatcher,
    QueueReplayProcessor,
    ReachabilityProbe,
    SyncNotifier,
)


logger = structlog.get_logger(__name__)


class OfflineSyncApp:
    """
    Application object handed to the UI layer.

    Writes go through ``dispatcher``; reads go through ``debts()`` and
    ``assets()``, which serve the cache and refetch stale collections.
    """

    def __init__(
        self,
        session: AuthSession,
        monitor: ConnectivityMonitor,
        gateway: RemoteDataGateway,
        cache: QueryCache,
        mutation_log: DurableMutationLog,
        dispatcher: MutationDispatcher,
        replay: QueueReplayProcessor,
        notifier: SyncNotifier,
        audit_logger: AuditLogger,
        probe: Optional[ReachabilityProbe] = None,
        probe_interval_seconds: float = 5.0,
    ):
        self.session = session
        self.monitor = monitor
        self.gateway = gateway
        self.cache = cache
        self.mutation_log = mutation_log
        self.dispatcher = dispatcher
        self.replay = replay
        self.notifier = notifier
        self.audit_logger = audit_logger
        self._probe = probe
        self._probe_interval_seconds = probe_interval_seconds
        self._probe_task: Optional[asyncio.Task] = None

    async def debts(self) -> list[Debt]:
        """The signed-in user's debts, fetched if missing or stale."""
        owner_id = self.session.require_user_id()
        return await self.cache.fetch(
            collection_key(EntityType.DEBT, owner_id),
            lambda: self.gateway.list_debts(owner_id),
        )

    async def assets(self) -> list[Asset]:
        """The signed-in user's assets, fetched if missing or stale."""
        owner_id = self.session.require_user_id()
        return await self.cache.fetch(
            collection_key(EntityType.ASSET, owner_id),
            lambda: self.gateway.list_assets(owner_id),
        )

    async def start(self) -> None:
        """
        Start the background loops: the reachability probe (if configured)
        and the periodic replay.

        With a probe, connectivity is read once before replay starts rather
        than trusting the monitor's initial reading.
        """
        if self._probe is not None and self._probe_task is None:
            self.monitor.update(await self._probe.check())
            self._probe_task = asyncio.get_running_loop().create_task(
                self.monitor.watch(self._probe, self._probe_interval_seconds)
            )
        self.replay.start()
        logger.info("app_started", probe=self._probe.url if self._probe else None)

    async def stop(self) -> None:
        """Stop the background loops. An in-flight drain is allowed to finish."""
        if self._probe_task is not None:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
        await self.replay.stop()
        logger.info("app_stopped")

    async def aclose(self) -> None:
        """stop() and close the HTTP clients the app owns."""
        await self.stop()
        if self._probe is not None:
            await self._probe.aclose()
        if isinstance(self.gateway, SupabaseGateway):
            await self.gateway.aclose()


def create_app_components(
    settings: Optional[Settings] = None,
    session: Optional[AuthSession] = None,
    gateway: Optional[RemoteDataGateway] = None,
    store: Optional[KeyValueStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    offline: bool = False,
    probe: Optional[ReachabilityProbe] = None,
) -> OfflineSyncApp:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use; defaults to get_settings()
        session: Identity holder; a signed-out session if omitted
        gateway: Server access; a SupabaseGateway if omitted
        store: Persistence for the offline log; JSON files under
               OFFLINE_QUEUE_STORAGE_DIR if omitted
        audit_storage: Optional audit backend. If None, only logs locally.
        offline: Initial connectivity reading
        probe: Reachability check; built from CONNECTIVITY_PROBE_URL (or the
               Supabase REST root) if omitted

    Returns:
        OfflineSyncApp with every component wired together
    """
    settings = settings or get_settings()
    queue_settings = settings.offline_queue
    connectivity_settings = settings.connectivity

    configure_logging(settings.app.log_level)

    session = session or AuthSession()
    gateway = gateway or SupabaseGateway(settings=settings.supabase, session=session)
    store = store or JsonFileKeyValueStore(queue_settings.storage_dir)

    monitor = ConnectivityMonitor(offline=offline)
    cache = QueryCache()
    notifier = SyncNotifier()
    audit_logger = AuditLogger(audit_storage)

    mutation_log = DurableMutationLog(store, key=queue_settings.storage_key)
    dead_letter_log = DurableMutationLog(store, key=queue_settings.dead_letter_key)

    dispatcher = MutationDispatcher(
        session=session,
        monitor=monitor,
        gateway=gateway,
        mutation_log=mutation_log,
        cache=cache,
        notifier=notifier,
        audit_logger=audit_logger,
        placeholder_prefix=queue_settings.placeholder_prefix,
    )

    replay = QueueReplayProcessor(
        session=session,
        monitor=monitor,
        gateway=gateway,
        mutation_log=mutation_log,
        cache=cache,
        notifier=notifier,
        audit_logger=audit_logger,
        failure_policy=queue_settings.failure_policy,
        max_replay_attempts=queue_settings.max_replay_attempts,
        dead_letter_log=dead_letter_log,
        interval_seconds=queue_settings.replay_interval_seconds,
        placeholder_prefix=queue_settings.placeholder_prefix,
    )

    probe_url = connectivity_settings.probe_url
    if probe_url is None and isinstance(gateway, SupabaseGateway):
        probe_url = gateway.rest_url

    if probe is None and probe_url:
        probe = ReachabilityProbe(
            probe_url,
            timeout_seconds=connectivity_settings.probe_timeout_seconds,
        )

    return OfflineSyncApp(
        session=session,
        monitor=monitor,
        gateway=gateway,
        cache=cache,
        mutation_log=mutation_log,
        dispatcher=dispatcher,
        replay=replay,
        notifier=notifier,
        audit_logger=audit_logger,
        probe=probe,
        probe_interval_seconds=connectivity_settings.probe_interval_seconds,
    )
