"""
In-app notification channel. Fire-and-forget: failures never reach callers.
"""
import uuid
from typing import Any, Callable, Dict, List, Optional

from tryon.models import utcnow_iso
from tryon.services.callbacks import invoke_safely
from tryon.storage.base import BaseStorage
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)

NotificationListener = Callable[[str, Dict[str, Any]], Any]


class NotificationChannel:
    """Stores notifications per user (newest first) and fans out to listeners."""

    def __init__(self, store: Optional[BaseStorage] = None):
        self.store = store
        self._listeners: List[NotificationListener] = []

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def notify(
        self,
        event: str,
        user_id: str,
        title: str,
        subtitle: str,
        image: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Deliver a notification.

        Returns:
            The notification dict
        """
        notification = {
            'id': f"notif_{uuid.uuid4().hex[:12]}",
            'event': event,
            'title': title,
            'subtitle': subtitle,
            'image': image,
            'time_iso': utcnow_iso(),
            'unread': True,
        }

        if self.store is not None:
            try:
                await self.store.add_notification(user_id, notification)
            except Exception as e:
                logger.warning(f"[NOTIFY] Failed to store notification for user {user_id}: {e}")

        for listener in list(self._listeners):
            await invoke_safely(listener, user_id, notification, logger=logger, tag="[NOTIFY]")

        logger.info(f"[NOTIFY] event={event} user={user_id} title={title!r}")
        return notification

    async def for_user(self, user_id: str) -> List[Dict[str, Any]]:
        if self.store is None:
            return []
        return await self.store.list_notifications(user_id)
