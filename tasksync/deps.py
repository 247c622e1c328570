from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .db import get_db
from .notifications import NotificationService
from .realtime import BroadcastChannel
from .repositories import SqlNotificationStore, SqlTaskStore
from .tasks import KeyedLock, TaskLifecycleService


# Process-wide collaborators are created once in main.on_startup and kept on
# app.state; request handlers receive them through these dependencies.


def get_channel(request: Request) -> BroadcastChannel:
    return request.app.state.channel


def get_task_locks(request: Request) -> KeyedLock | None:
    return getattr(request.app.state, "task_locks", None)


def get_notification_service(
    db: Session = Depends(get_db),
    channel: BroadcastChannel = Depends(get_channel),
) -> NotificationService:
    return NotificationService(SqlNotificationStore(db), channel)


def get_task_service(
    db: Session = Depends(get_db),
    channel: BroadcastChannel = Depends(get_channel),
    notifications: NotificationService = Depends(get_notification_service),
    locks: KeyedLock | None = Depends(get_task_locks),
) -> TaskLifecycleService:
    return TaskLifecycleService(SqlTaskStore(db), notifications, channel, locks=locks)
