"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride``: enforces valid lifecycle transitions
  (PENDING -> ACCEPTED -> PICKED_UP -> COMPLETED -> RATED, with CANCELLED
  reachable until completion) and which actor role may drive each edge.
- ``Location`` is the single structured place type; legacy plain-string
  shapes are normalised at the boundary by ``Location.parse``.
- ``Ride.to_document`` / ``Ride.from_document`` give the full-document
  snapshot that subscribers receive on every write.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from .enums import ActorRole, RideStatus, RIDE_TRANSITIONS, TRANSITION_ACTORS


class InvalidStateTransition(Exception):
    """Raised when a ride status change violates the state machine."""


class ActorNotPermitted(Exception):
    """Raised when the acting user may not drive the requested change."""


class RideValidationError(ValueError):
    """Raised for malformed input, before any store interaction."""


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    address: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def __post_init__(self):
        if not isinstance(self.address, str) or not self.address.strip():
            raise RideValidationError("Location address must not be empty")
        if (self.latitude is None) != (self.longitude is None):
            raise RideValidationError(
                "Location needs both latitude and longitude, or neither"
            )
        if self.latitude is not None:
            if not -90 <= self.latitude <= 90:
                raise RideValidationError(f"Latitude out of range: {self.latitude}")
            if not -180 <= self.longitude <= 180:
                raise RideValidationError(
                    f"Longitude out of range: {self.longitude}"
                )

    @classmethod
    def parse(cls, value: Any) -> "Location":
        """Normalise any accepted location shape into a ``Location``.

        Accepts an existing ``Location``, a bare address string (older
        clients sent only the typed label), or a mapping with ``address``
        and optional ``lat``/``lng`` (or ``latitude``/``longitude``).
        """
        if isinstance(value, Location):
            return value
        if isinstance(value, str):
            return cls(address=value.strip())
        if isinstance(value, dict):
            lat = value.get("latitude", value.get("lat"))
            lng = value.get("longitude", value.get("lng"))
            address = value.get("address") or value.get("label") or ""
            return cls(
                address=address.strip() if isinstance(address, str) else address,
                latitude=float(lat) if lat is not None else None,
                longitude=float(lng) if lng is not None else None,
            )
        raise RideValidationError(f"Unsupported location value: {value!r}")


@dataclass(frozen=True)
class VehicleInfo:
    model: str = "Unknown Model"
    color: str = "Unknown Color"
    plate_number: str = "Unknown Plate"


@dataclass(frozen=True)
class RiderInfo:
    """Copy of the rider's profile taken at claim time. Never refreshed."""

    name: str = "Rider"
    phone: Optional[str] = None
    rating: float = 0.0
    total_rides: int = 0
    vehicle: VehicleInfo = field(default_factory=VehicleInfo)

    @classmethod
    def from_dict(cls, data: dict) -> "RiderInfo":
        vehicle = data.get("vehicle") or {}
        return cls(
            name=data.get("name") or "Rider",
            phone=data.get("phone"),
            rating=data.get("rating") or 0.0,
            total_rides=data.get("total_rides") or 0,
            vehicle=VehicleInfo(**vehicle),
        )


# ── Entities ──────────────────────────────────────────────────────────


_TIMESTAMP_FIELDS = (
    "created_at",
    "accepted_at",
    "picked_up_at",
    "completed_at",
    "cancelled_at",
    "rated_at",
    "updated_at",
)


@dataclass
class Ride:
    id: Optional[str] = None
    passenger_id: str = ""
    pickup: Location = field(default_factory=lambda: Location("unknown"))
    dropoff: Location = field(default_factory=lambda: Location("unknown"))
    status: RideStatus = RideStatus.PENDING
    rider_id: Optional[str] = None
    rider_info: Optional[RiderInfo] = None
    rider_location: Optional[tuple[float, float]] = None
    fare: Optional[float] = None
    estimated_duration: Optional[float] = None
    cancelled_by: Optional[ActorRole] = None
    cancellation_reason: Optional[str] = None
    passenger_rating: Optional[int] = None
    passenger_feedback: Optional[str] = None
    version: int = 0
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    rated_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def check_transition(self, new_status: RideStatus, actor: ActorRole) -> None:
        """Raise unless *actor* may move this ride to *new_status*."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise InvalidStateTransition(
                f"Cannot transition from {self.status.value} to {new_status.value}"
            )
        if actor not in TRANSITION_ACTORS[(self.status, new_status)]:
            raise ActorNotPermitted(
                f"A {actor.value} cannot move a ride from "
                f"{self.status.value} to {new_status.value}"
            )

    def counterparty_of(self, role: ActorRole) -> Optional[str]:
        if role is ActorRole.PASSENGER:
            return self.rider_id
        return self.passenger_id

    # ── Snapshot (de)serialisation ────────────────────────────────────

    def to_document(self) -> dict:
        doc = asdict(self)
        doc["status"] = self.status.value
        doc["cancelled_by"] = self.cancelled_by.value if self.cancelled_by else None
        doc["rider_location"] = (
            list(self.rider_location) if self.rider_location else None
        )
        for name in _TIMESTAMP_FIELDS:
            value = getattr(self, name)
            doc[name] = value.isoformat() if value else None
        return doc

    @classmethod
    def from_document(cls, doc: dict) -> "Ride":
        data = dict(doc)
        data["status"] = RideStatus(data["status"])
        data["pickup"] = Location(**data["pickup"])
        data["dropoff"] = Location(**data["dropoff"])
        if data.get("rider_info"):
            data["rider_info"] = RiderInfo.from_dict(data["rider_info"])
        if data.get("cancelled_by"):
            data["cancelled_by"] = ActorRole(data["cancelled_by"])
        if data.get("rider_location"):
            data["rider_location"] = tuple(data["rider_location"])
        for name in _TIMESTAMP_FIELDS:
            if data.get(name):
                data[name] = datetime.fromisoformat(data[name])
        return cls(**data)

