from __future__ import annotations

import logging

from .models import Notification
from .realtime import EVENT_NOTIFICATION_CREATED, EventEmitter
from .repositories import NotificationStore
from .schemas import notification_payload

logger = logging.getLogger("tasksync.notifications")


def assignment_message(title: str) -> str:
    return f"You were assigned task {title}"


class NotificationService:
    """Persists per-user notifications and announces them on the live channel."""

    def __init__(self, store: NotificationStore, channel: EventEmitter):
        self.store = store
        self.channel = channel

    def create_for_user(self, user_id: str, message: str) -> Notification:
        """Persist a notification, then emit `notification:created`.

        Persistence errors propagate. The emit is best-effort: a failure is
        logged and the stored notification is still returned.
        """
        n = self.store.create(user_id=str(user_id), message=message)
        try:
            self.channel.emit(
                EVENT_NOTIFICATION_CREATED,
                {"userId": str(user_id), "notification": notification_payload(n)},
            )
        except Exception:
            logger.exception("Failed to emit notification:created (user_id=%s notification_id=%s)", user_id, n.id)
        return n

    def list_for_user(self, user_id: str) -> list[Notification]:
        return self.store.list_by_user(str(user_id))

    def mark_read(self, notification_id: str) -> Notification:
        return self.store.mark_read(str(notification_id))

    def delete(self, notification_id: str) -> Notification:
        return self.store.delete(str(notification_id))

    def unread_count(self, user_id: str) -> int:
        return self.store.count_unread(str(user_id))
