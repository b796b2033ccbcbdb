"""
Rider endpoints
===============

PUT /api/v1/riders/me/availability -- go online / offline (approved riders)
GET /api/v1/riders/pending         -- current pending ride requests
WS  /api/v1/riders/pending/live    -- live pending-ride feed
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from src.api.dependencies import get_controller, get_session, session_from_headers
from src.api.middleware import limiter
from src.api.schemas import AvailabilityRequest, EffectOut, RideResponse
from src.config import settings
from src.domain.entities import ActorNotPermitted, Ride
from src.services.lifecycle import (
    RideLifecycleController,
    RiderNotApproved,
    StoreUnavailable,
)
from src.services.session import SessionContext
from src.services.sync import PendingRideFeed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/riders", tags=["riders"])


@router.put("/me/availability", status_code=204, summary="Go online or offline")
@limiter.limit(settings.rate_limit)
async def set_availability(
    request: Request,
    body: AvailabilityRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    await controller.set_rider_online(session, body.online)


@router.get("/pending", response_model=list[RideResponse], summary="Pending requests")
async def pending_rides(
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return [RideResponse.from_entity(r) for r in await controller.pending_rides(session)]


@router.websocket("/pending/live")
async def pending_live(websocket: WebSocket):
    """Full pending list on attach and after every change to it."""
    session = session_from_headers(websocket.headers)
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    controller: RideLifecycleController = websocket.app.state.controller
    feed = PendingRideFeed()

    async def push(rides: list[Ride]) -> None:
        effects = feed.observe(rides)
        await websocket.send_json(
            jsonable_encoder(
                {
                    "type": "pending",
                    "rides": [RideResponse.from_entity(r) for r in rides],
                    "effects": [EffectOut.from_effect(e) for e in effects],
                }
            )
        )

    try:
        unsubscribe = await controller.subscribe_pending_rides(session, push)
    except WebSocketDisconnect:
        logger.debug("Pending feed for %s dropped while attaching", session.user_id)
        return
    except StoreUnavailable:
        await websocket.send_json({"type": "error", "detail": "Ride requests are unavailable"})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    except (ActorNotPermitted, RiderNotApproved) as exc:
        await websocket.send_json({"type": "error", "detail": str(exc) or "Not allowed"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Pending feed closed by %s", session.user_id)
    finally:
        await unsubscribe()
