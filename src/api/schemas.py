"""Pydantic request / response schemas for the REST and websocket API."""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, Field

from src.domain.entities import Ride
from src.domain.enums import ActorRole, NotificationKind, OnboardingStatus, RideStatus
from src.domain.reactions import SideEffect


# ── Requests ──────────────────────────────────────────────────────────


class LocationIn(BaseModel):
    address: str = Field(..., min_length=1, max_length=255)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


class RideCreateRequest(BaseModel):
    pickup: Union[LocationIn, str] = Field(
        ..., description="Structured location, or a bare address from older clients."
    )
    dropoff: Union[LocationIn, str]
    fare: Optional[float] = Field(None, ge=0)
    estimated_duration: Optional[float] = Field(None, ge=0, description="Minutes.")

    def locations(self) -> tuple:
        def plain(value):
            return value.model_dump() if isinstance(value, LocationIn) else value

        return plain(self.pickup), plain(self.dropoff)


class StatusChangeRequest(BaseModel):
    status: RideStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RatingRequest(BaseModel):
    stars: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)


class RiderLocationRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class AvailabilityRequest(BaseModel):
    online: bool


class PushTokenRequest(BaseModel):
    token: Optional[str] = Field(None, max_length=255)


class OnboardingUpdateRequest(BaseModel):
    status: OnboardingStatus


# ── Responses ─────────────────────────────────────────────────────────


class LocationOut(BaseModel):
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    model_config = {"from_attributes": True}


class VehicleOut(BaseModel):
    model: str
    color: str
    plate_number: str

    model_config = {"from_attributes": True}


class RiderInfoOut(BaseModel):
    name: str
    phone: Optional[str] = None
    rating: float
    total_rides: int
    vehicle: VehicleOut

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: str
    status: RideStatus
    passenger_id: str
    rider_id: Optional[str] = None
    pickup: LocationOut
    dropoff: LocationOut
    rider_info: Optional[RiderInfoOut] = None
    rider_location: Optional[tuple[float, float]] = None
    fare: Optional[float] = None
    estimated_duration: Optional[float] = None
    cancelled_by: Optional[ActorRole] = None
    cancellation_reason: Optional[str] = None
    passenger_rating: Optional[int] = None
    passenger_feedback: Optional[str] = None
    version: int
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    rated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, ride: Ride) -> "RideResponse":
        return cls.model_validate(ride)


class EffectOut(BaseModel):
    kind: str
    target: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    delay_seconds: float = 0.0

    @classmethod
    def from_effect(cls, effect: SideEffect) -> "EffectOut":
        data = asdict(effect)
        data["kind"] = effect.kind.value
        return cls(**data)


class NotificationResponse(BaseModel):
    id: str
    kind: NotificationKind
    title: str
    body: str
    ride_id: Optional[str] = None
    read: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class UnreadCountResponse(BaseModel):
    unread: int


class CountResponse(BaseModel):
    count: int


class HealthResponse(BaseModel):
    status: str = "ok"
    pending_rides: int = 0


class ErrorResponse(BaseModel):
    detail: str
