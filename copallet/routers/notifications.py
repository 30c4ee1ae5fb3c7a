"""
Notifications Router
====================

In-app notification inbox of the calling actor.
"""

import logging

from fastapi import APIRouter, Depends, Query

from copallet.auth.actor_auth import Actor, get_current_actor
from copallet.models.schemas import NotificationListResponse, NotificationRead
from copallet.services.notification_service import NotificationService, get_notification_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/notifications", response_model=NotificationListResponse, summary="List notifications")
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationListResponse:
    rows = service.list_for_user(actor.user_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationRead.model_validate(r) for r in rows],
        unread=service.unread_count(actor.user_id),
    )


@router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationRead,
    summary="Mark a notification read",
)
def mark_notification_read(
    notification_id: str,
    actor: Actor = Depends(get_current_actor),
    service: NotificationService = Depends(get_notification_service),
) -> NotificationRead:
    return NotificationRead.model_validate(service.mark_read(notification_id, actor.user_id))
