"""
Ride endpoints
==============

POST  /api/v1/rides                          -- request a ride (passenger)
GET   /api/v1/rides                          -- caller's ride history
GET   /api/v1/rides/{ride_id}                -- current ride document
POST  /api/v1/rides/{ride_id}/claim          -- accept a pending ride (rider)
POST  /api/v1/rides/{ride_id}/status         -- drive the ride forward
POST  /api/v1/rides/{ride_id}/cancel         -- cancel (passenger or rider)
POST  /api/v1/rides/{ride_id}/rating         -- rate a completed ride (passenger)
PUT   /api/v1/rides/{ride_id}/rider-location -- live position (assigned rider)
WS    /api/v1/rides/{ride_id}/live           -- snapshot + effects stream
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from src.api.dependencies import get_controller, get_session, session_from_headers
from src.api.middleware import limiter
from src.api.schemas import (
    CancelRequest,
    EffectOut,
    ErrorResponse,
    RatingRequest,
    RideCreateRequest,
    RideResponse,
    RiderLocationRequest,
    StatusChangeRequest,
)
from src.config import settings
from src.domain.entities import Ride
from src.domain.reactions import EffectKind, SideEffect
from src.infrastructure.store import RideNotFound
from src.services.lifecycle import (
    RideLifecycleController,
    StoreUnavailable,
    TransitionOutcome,
    TransitionResult,
)
from src.services.session import SessionContext
from src.services.sync import RideStatusWatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])

_CONFLICT = {409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}}


def _outcome_response(outcome: TransitionOutcome) -> RideResponse:
    """Map a lifecycle outcome onto the HTTP contract."""
    if outcome.result is TransitionResult.OK:
        return RideResponse.from_entity(outcome.ride)
    if outcome.result is TransitionResult.ALREADY_TAKEN:
        raise HTTPException(status_code=409, detail="This ride is no longer available")
    if outcome.result is TransitionResult.INVALID_TRANSITION:
        current = outcome.ride.status.value if outcome.ride else "unknown"
        raise HTTPException(
            status_code=409,
            detail=f"Ride is {current}; that change is not allowed",
        )
    raise HTTPException(
        status_code=503, detail="Could not save the change. Please try again."
    )


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Request a ride",
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    pickup, dropoff = body.locations()
    ride = await controller.create_ride(
        session,
        pickup,
        dropoff,
        fare=body.fare,
        estimated_duration=body.estimated_duration,
    )
    return RideResponse.from_entity(ride)


@router.get("", response_model=list[RideResponse], summary="Ride history")
async def ride_history(
    limit: int = 50,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    rides = await controller.ride_history(session, limit=max(1, min(limit, 200)))
    return [RideResponse.from_entity(r) for r in rides]


@router.get("/{ride_id}", response_model=RideResponse, summary="Get a ride")
async def get_ride(
    ride_id: str,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return RideResponse.from_entity(await controller.get_ride(ride_id))


@router.post(
    "/{ride_id}/claim",
    response_model=RideResponse,
    responses=_CONFLICT,
    summary="Accept a pending ride",
    description="First rider to claim wins; everyone else gets 409.",
)
@limiter.limit(settings.rate_limit)
async def claim_ride(
    request: Request,
    ride_id: str,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return _outcome_response(await controller.claim_ride(session, ride_id))


@router.post(
    "/{ride_id}/status",
    response_model=RideResponse,
    responses=_CONFLICT,
    summary="Move a ride to its next status",
)
@limiter.limit(settings.rate_limit)
async def advance_status(
    request: Request,
    ride_id: str,
    body: StatusChangeRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return _outcome_response(
        await controller.advance_status(session, ride_id, body.status)
    )


@router.post(
    "/{ride_id}/cancel",
    response_model=RideResponse,
    responses=_CONFLICT,
    summary="Cancel a ride",
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: str,
    body: Optional[CancelRequest] = None,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    reason = body.reason if body else None
    return _outcome_response(await controller.cancel_ride(session, ride_id, reason))


@router.post(
    "/{ride_id}/rating",
    response_model=RideResponse,
    responses=_CONFLICT,
    summary="Rate a completed ride",
)
@limiter.limit(settings.rate_limit)
async def submit_rating(
    request: Request,
    ride_id: str,
    body: RatingRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return _outcome_response(
        await controller.submit_rating(session, ride_id, body.stars, body.feedback)
    )


@router.put(
    "/{ride_id}/rider-location",
    response_model=RideResponse,
    responses=_CONFLICT,
    summary="Report the assigned rider's position",
)
async def update_rider_location(
    ride_id: str,
    body: RiderLocationRequest,
    session: SessionContext = Depends(get_session),
    controller: RideLifecycleController = Depends(get_controller),
):
    return _outcome_response(
        await controller.update_rider_location(session, ride_id, body.lat, body.lng)
    )


# ── Live ──────────────────────────────────────────────────────────────


def live_message(ride: Ride, effects: list[SideEffect]) -> dict:
    return jsonable_encoder(
        {
            "type": "ride",
            "ride": RideResponse.from_entity(ride),
            "effects": [EffectOut.from_effect(e) for e in effects],
        }
    )


@router.websocket("/{ride_id}/live")
async def ride_live(websocket: WebSocket, ride_id: str):
    """
    Stream the ride document on every write, with the side effects the
    caller's role should perform.  Effects are only attached on status
    edges, so a repeated snapshot carries an empty list.
    """
    session = session_from_headers(websocket.headers)
    if session is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    await websocket.accept()

    controller: RideLifecycleController = websocket.app.state.controller
    watcher = RideStatusWatcher(session.role, settings.cancel_exit_delay_seconds)

    async def push(ride: Ride) -> None:
        await websocket.send_json(live_message(ride, watcher.observe(ride)))

    try:
        unsubscribe = await controller.subscribe_ride(ride_id, push)
    except WebSocketDisconnect:
        logger.debug("Live view of ride %s dropped while attaching", ride_id)
        return
    except StoreUnavailable:
        await websocket.send_json({"type": "error", "detail": "Ride updates are unavailable"})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    except RideNotFound:
        exit_back = SideEffect(
            EffectKind.EXIT,
            target="back",
            delay_seconds=settings.not_found_exit_delay_seconds,
        )
        await websocket.send_json(
            {
                "type": "error",
                "detail": "Ride not found",
                "effects": [EffectOut.from_effect(exit_back).model_dump()],
            }
        )
        await websocket.close()
        return

    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live view of ride %s closed by %s", ride_id, session.user_id)
    finally:
        await unsubscribe()
