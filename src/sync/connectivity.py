"""
Connectivity Monitor

Exposes a single point-in-time reading, "offline: bool", updated as the
platform reports reachability changes.

DESIGN DECISION: The reading is advisory. Nothing guarantees it stays true
between sampling it and acting on it; a write dispatched "online" just as
the link drops fails like any other gateway error.

A device counts as online only when it is connected AND the internet is
known to be reachable. Unknown reachability counts as offline.
"""

import asyncio
from collections.abc import Callable
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel


logger = structlog.get_logger(__name__)

ConnectivityListener = Callable[[bool], None]


class NetworkState(BaseModel):
    """One reachability report from the platform (or a probe)."""
    is_connected: bool
    is_internet_reachable: Optional[bool] = None

    @property
    def offline(self) -> bool:
        return not (self.is_connected and self.is_internet_reachable)


class ConnectivityMonitor:
    """
    Current offline reading plus transition notifications.

    Listeners are called synchronously, only when the reading changes,
    with the new ``offline`` value.
    """

    def __init__(self, offline: bool = False):
        self._offline = offline
        self._listeners: list[ConnectivityListener] = []

    @property
    def is_offline(self) -> bool:
        return self._offline

    def update(self, state: NetworkState) -> None:
        self.set_offline(state.offline)

    def set_offline(self, offline: bool) -> None:
        if offline == self._offline:
            return
        self._offline = offline
        logger.info("connectivity_changed", offline=offline)
        for listener in list(self._listeners):
            listener(offline)

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register for transitions. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def watch(self, probe: "ReachabilityProbe", interval_seconds: float) -> None:
        """
        Feed probe results into the monitor until cancelled.
        """
        while True:
            self.update(await probe.check())
            await asyncio.sleep(interval_seconds)


class ReachabilityProbe:
    """
    Decides reachability by requesting a URL.

    Any HTTP response, even an error status, proves the network path works;
    a transport failure or timeout means offline.
    """

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 3.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def url(self) -> str:
        return self._url

    async def check(self) -> NetworkState:
        try:
            await self._client.head(self._url)
        except httpx.TransportError as e:
            logger.debug("reachability_probe_failed", url=self._url, error=str(e))
            return NetworkState(is_connected=False, is_internet_reachable=False)
        return NetworkState(is_connected=True, is_internet_reachable=True)

    async def aclose(self) -> None:
        await self._client.aclose()
