"""
Sync Notifications

Side channel through which the dispatcher and the replay processor tell the
user what happened (the "toast" messages). Replay runs long after the
original caller is gone, so this is the only way its outcome reaches a user.
"""

from collections.abc import Callable
from enum import Enum
from typing import Optional

import structlog
from pydantic import BaseModel


logger = structlog.get_logger(__name__)


class NotificationLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class SyncNotification(BaseModel):
    level: NotificationLevel
    title: str
    message: Optional[str] = None


SyncObserver = Callable[[SyncNotification], None]


# User-facing texts
SAVED_OFFLINE = "Your change is saved and will sync when you're back online."
SYNC_STARTED = "Syncing your offline changes..."
SYNC_ITEM_FAILED = "Failed to sync a change"
SYNC_COMPLETED = "Your data is now up to date!"


class SyncNotifier:
    """Fans notifications out to subscribed observers."""

    def __init__(self):
        self._observers: list[SyncObserver] = []

    def subscribe(self, observer: SyncObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def notify(
        self,
        level: NotificationLevel,
        title: str,
        message: Optional[str] = None,
    ) -> SyncNotification:
        notification = SyncNotification(level=level, title=title, message=message)
        for observer in list(self._observers):
            try:
                observer(notification)
            except Exception:
                # An observer (a UI toast) must not break a drain cycle
                logger.exception("sync_observer_failed", title=title)
        return notification

    def saved_offline(self) -> SyncNotification:
        return self.notify(NotificationLevel.INFO, SAVED_OFFLINE)

    def sync_started(self) -> SyncNotification:
        return self.notify(NotificationLevel.INFO, SYNC_STARTED)

    def sync_item_failed(self, kind: str) -> SyncNotification:
        return self.notify(NotificationLevel.ERROR, SYNC_ITEM_FAILED, f"Could not process: {kind}")

    def sync_completed(self) -> SyncNotification:
        return self.notify(NotificationLevel.SUCCESS, SYNC_COMPLETED)
