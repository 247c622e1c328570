from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth import get_current_user_api
from ..deps import get_notification_service
from ..models import User
from ..notifications import NotificationService
from ..repositories import NotFoundError
from ..schemas import NotificationOut, UnreadCountOut

router = APIRouter()


@router.get("/", response_model=list[NotificationOut])
def list_notifications(
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(get_current_user_api),
):
    return service.list_for_user(user.id)


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(get_current_user_api),
):
    return UnreadCountOut(unread=service.unread_count(user.id))


@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_read(
    notification_id: str,
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(get_current_user_api),
):
    try:
        return service.mark_read(notification_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")


@router.delete("/{notification_id}", response_model=NotificationOut)
def delete_notification(
    notification_id: str,
    service: NotificationService = Depends(get_notification_service),
    user: User = Depends(get_current_user_api),
):
    try:
        return service.delete(notification_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Notification not found")
