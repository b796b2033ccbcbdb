"""
Admin / observability endpoints
===============================

GET   /api/v1/admin/health                    -- health check + pending backlog
PATCH /api/v1/admin/riders/{id}/onboarding    -- approve / reject a rider
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import get_db
from src.api.middleware import limiter
from src.api.schemas import HealthResponse, OnboardingUpdateRequest
from src.domain.enums import ActorRole
from src.infrastructure.repositories import RideRepository, UserRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(db: AsyncSession = Depends(get_db)):
    return HealthResponse(pending_rides=await RideRepository(db).count_pending())


@router.patch(
    "/riders/{rider_id}/onboarding",
    status_code=204,
    summary="Set a rider's onboarding status",
)
@limiter.limit("100/minute")
async def set_onboarding(
    request: Request,
    rider_id: str,
    body: OnboardingUpdateRequest,
    db: AsyncSession = Depends(get_db),
):
    users = UserRepository(db)
    user = await users.get_by_id(rider_id)
    if user is None or ActorRole(user.role) is not ActorRole.RIDER:
        raise HTTPException(status_code=404, detail="Rider not found")
    await users.set_onboarding_status(rider_id, body.status)
    logger.info("Rider %s onboarding set to %s", rider_id, body.status.value)
