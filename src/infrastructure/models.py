"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``          -- passengers and riders (profile + onboarding gate)
* ``rides``          -- one document per trip; the shared lifecycle record
* ``notifications``  -- per-user append-only inbox

Indexes
-------
* **B-Tree** on ``rides.status`` for the pending-ride live query, on
  ``passenger_id`` / ``rider_id`` for history, and on
  ``notifications (user_id, created_at)`` for the inbox listing.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)

from .database import Base
from src.domain.enums import (
    ActorRole,
    NotificationKind,
    OnboardingStatus,
    RideStatus,
)


def _values(enum_cls):
    return [member.value for member in enum_cls]


def _enum(enum_cls, name: str) -> Enum:
    # Persist the lowercase values, not the member names
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=_values,
    )


def _new_id() -> str:
    return str(uuid.uuid4())


class UserModel(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True, default=_new_id)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(_enum(ActorRole, "actor_role"), nullable=False)

    rating = Column(Float, default=0.0, nullable=False)
    total_ratings = Column(Integer, default=0, nullable=False)
    total_rides = Column(Integer, default=0, nullable=False)

    onboarding_status = Column(
        _enum(OnboardingStatus, "onboarding_status"),
        default=OnboardingStatus.INCOMPLETE,
        nullable=False,
    )
    is_online = Column(Boolean, default=False, nullable=False)
    push_token = Column(String(255), nullable=True)

    vehicle_model = Column(String(120), nullable=True)
    vehicle_color = Column(String(60), nullable=True)
    vehicle_plate = Column(String(30), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=_new_id)
    passenger_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    rider_id = Column(String(64), ForeignKey("users.id"), nullable=True)
    status = Column(
        _enum(RideStatus, "ride_status"), default=RideStatus.PENDING, nullable=False
    )
    version = Column(Integer, default=1, nullable=False)

    pickup_address = Column(String(255), nullable=False)
    pickup_lat = Column(Float, nullable=True)
    pickup_lng = Column(Float, nullable=True)
    dropoff_address = Column(String(255), nullable=False)
    dropoff_lat = Column(Float, nullable=True)
    dropoff_lng = Column(Float, nullable=True)

    rider_info = Column(JSON, nullable=True)
    rider_lat = Column(Float, nullable=True)
    rider_lng = Column(Float, nullable=True)

    fare = Column(Float, nullable=True)
    estimated_duration = Column(Float, nullable=True)

    cancelled_by = Column(_enum(ActorRole, "actor_role"), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    passenger_rating = Column(Integer, nullable=True)
    passenger_feedback = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    rated_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_rides_status", "status"),
        Index("idx_rides_passenger", "passenger_id"),
        Index("idx_rides_rider", "rider_id"),
    )


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(64), ForeignKey("users.id"), nullable=False)
    kind = Column(_enum(NotificationKind, "notification_kind"), nullable=False)
    title = Column(String(200), nullable=False)
    body = Column(Text, nullable=False)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=True)
    read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
