"""
Inbox and device endpoints
==========================

GET    /api/v1/notifications                -- newest first
GET    /api/v1/notifications/unread-count
PATCH  /api/v1/notifications/{id}/read
POST   /api/v1/notifications/read-all
DELETE /api/v1/notifications                -- clear the inbox
PUT    /api/v1/users/me/push-token          -- register / drop a device token
WS     /api/v1/notifications/live           -- new inbox entries as they land
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_controller, get_db, get_session, session_from_headers
from src.api.schemas import (
    CountResponse,
    NotificationResponse,
    PushTokenRequest,
    UnreadCountResponse,
)
from src.infrastructure.events import inbox_channel
from src.infrastructure.repositories import NotificationRepository
from src.services.lifecycle import RideLifecycleController
from src.services.session import SessionContext

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])


@router.get(
    "/notifications",
    response_model=list[NotificationResponse],
    summary="List the caller's notifications",
)
async def list_notifications(
    limit: int = 100,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    repo = NotificationRepository(db)
    return await repo.list_for_user(session.user_id, limit=max(1, min(limit, 500)))


@router.get("/notifications/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    return UnreadCountResponse(
        unread=await NotificationRepository(db).count_unread(session.user_id)
    )


@router.patch("/notifications/{notification_id}/read", status_code=204)
async def mark_read(
    notification_id: str,
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    if not await NotificationRepository(db).mark_read(session.user_id, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")


@router.post("/notifications/read-all", response_model=CountResponse)
async def mark_all_read(
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    return CountResponse(count=await NotificationRepository(db).mark_all_read(session.user_id))


@router.delete("/notifications", response_model=CountResponse)
async def clear_notifications(
    session: SessionContext = Depends(get_session),
    db: AsyncSession = Depends(get_db),
):
    return CountResponse(count=await NotificationRepository(db).clear(session.user_id))


@router.put("/users/me/push-token", status_code=204)
async def register_push_token(
    body: PushTokenRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    await controller.register_push_token(session, body.token)


@router.websocket("/notifications/live")
async def notifications_live(websocket: WebSocket):
    session = session_from_headers(websocket.headers)
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    controller: RideLifecycleController = websocket.app.state.controller

    async def push(document: dict) -> None:
        await websocket.send_json({"type": "notification", "notification": document})

    unsubscribe = await controller.notifier.bus.subscribe(
        inbox_channel(session.user_id), push
    )
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Inbox feed closed by %s", session.user_id)
    finally:
        await unsubscribe()
