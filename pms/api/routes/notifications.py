from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, ConfigDict

from pms.dependencies.auth import CurrentUser, resolve_user_from_token
from pms.dependencies.services import NotificationServiceDep
from pms.notifications.dispatcher import NOTIFICATIONS_SNAPSHOT_EVENT
from pms.notifications.models import NotificationType
from pms.tickets.errors import NotificationNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    type: NotificationType
    message: str
    related_ticket_id: str
    related_ticket_title: str
    is_read: bool
    created_at: datetime


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


@router.get("", response_model=list[NotificationResponse])
async def list_notifications(service: NotificationServiceDep, user: CurrentUser) -> list[NotificationResponse]:
    notifications = await service.list_notifications(user.user_id)
    return [NotificationResponse.model_validate(notification) for notification in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(service: NotificationServiceDep, user: CurrentUser) -> UnreadCountResponse:
    return UnreadCountResponse(count=await service.unread_count(user.user_id))


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(service: NotificationServiceDep, user: CurrentUser) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=await service.mark_all_read(user.user_id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str, service: NotificationServiceDep, user: CurrentUser
) -> NotificationResponse:
    try:
        notification = await service.mark_read(user.user_id, notification_id)
    except NotificationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return NotificationResponse.model_validate(notification)


@router.websocket("/ws")
async def notifications_socket(websocket: WebSocket, token: str | None = Query(default=None)) -> None:
    """Live notification channel.

    Every connection starts with a snapshot of the caller's unread
    notifications, then receives ``notificationCreated`` events as they are
    committed. Inbound frames are ignored.
    """

    try:
        user = resolve_user_from_token(token)
    except HTTPException:
        user = None
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    service = getattr(websocket.app.state, "notification_service", None)
    dispatcher = getattr(websocket.app.state, "notification_dispatcher", None)
    if service is None or dispatcher is None:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    await websocket.accept()
    registry = dispatcher.registry
    # Registered before the snapshot is read so no push falls in between.
    registry.register(user.user_id, websocket)
    try:
        unread = await service.list_notifications(user.user_id)
        await websocket.send_json(
            {
                "event": NOTIFICATIONS_SNAPSHOT_EVENT,
                "notifications": [notification.to_payload() for notification in unread],
            }
        )
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Notification channel for %s disconnected", user.user_id)
    finally:
        registry.unregister(user.user_id, websocket)
