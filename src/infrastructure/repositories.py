"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  ``ride_from_model`` / ``rider_info_from_user``
are the single place where ORM rows become domain values.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import NotificationModel, RideModel, UserModel
from src.domain.entities import Location, Ride, RiderInfo, VehicleInfo
from src.domain.enums import ActorRole, NotificationKind, OnboardingStatus, RideStatus


# ── Row -> domain ─────────────────────────────────────────────────────


def ride_from_model(model: RideModel) -> Ride:
    rider_location = None
    if model.rider_lat is not None and model.rider_lng is not None:
        rider_location = (model.rider_lat, model.rider_lng)
    return Ride(
        id=model.id,
        passenger_id=model.passenger_id,
        pickup=Location(model.pickup_address, model.pickup_lat, model.pickup_lng),
        dropoff=Location(model.dropoff_address, model.dropoff_lat, model.dropoff_lng),
        status=RideStatus(model.status),
        rider_id=model.rider_id,
        rider_info=RiderInfo.from_dict(model.rider_info) if model.rider_info else None,
        rider_location=rider_location,
        fare=model.fare,
        estimated_duration=model.estimated_duration,
        cancelled_by=ActorRole(model.cancelled_by) if model.cancelled_by else None,
        cancellation_reason=model.cancellation_reason,
        passenger_rating=model.passenger_rating,
        passenger_feedback=model.passenger_feedback,
        version=model.version,
        created_at=model.created_at,
        accepted_at=model.accepted_at,
        picked_up_at=model.picked_up_at,
        completed_at=model.completed_at,
        cancelled_at=model.cancelled_at,
        rated_at=model.rated_at,
        updated_at=model.updated_at,
    )


def rider_info_from_user(user: UserModel) -> RiderInfo:
    return RiderInfo(
        name=user.name or "Rider",
        phone=user.phone,
        rating=user.rating or 0.0,
        total_rides=user.total_rides or 0,
        vehicle=VehicleInfo(
            model=user.vehicle_model or "Unknown Model",
            color=user.vehicle_color or "Unknown Color",
            plate_number=user.vehicle_plate or "Unknown Plate",
        ),
    )


# ── Repositories ──────────────────────────────────────────────────────


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_ride(
        self,
        *,
        passenger_id: str,
        pickup: Location,
        dropoff: Location,
        fare: float | None = None,
        estimated_duration: float | None = None,
        now: datetime,
    ) -> RideModel:
        ride = RideModel(
            passenger_id=passenger_id,
            status=RideStatus.PENDING,
            version=1,
            pickup_address=pickup.address,
            pickup_lat=pickup.latitude,
            pickup_lng=pickup.longitude,
            dropoff_address=dropoff.address,
            dropoff_lat=dropoff.latitude,
            dropoff_lng=dropoff.longitude,
            fare=fare,
            estimated_duration=estimated_duration,
            created_at=now,
            updated_at=now,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def get_by_id(self, ride_id: str) -> Optional[RideModel]:
        return await self.session.get(RideModel, ride_id)

    async def compare_and_set(
        self,
        ride_id: str,
        expected_status: RideStatus,
        values: dict[str, Any],
    ) -> Optional[RideModel]:
        """
        Apply *values* only if the row's status is still *expected_status*.

        Single ``UPDATE ... WHERE id = :id AND status = :expected`` so the
        database arbitrates concurrent writers; the loser matches zero rows.
        Returns the refreshed row, or ``None`` when the precondition failed.
        """
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride_id, RideModel.status == expected_status)
            .values(**values, version=RideModel.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.session.get(RideModel, ride_id, populate_existing=True)

    async def get_pending_rides(self) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.status == RideStatus.PENDING)
            .order_by(RideModel.created_at)
        )
        return list(result.scalars().all())

    async def get_rides_for_user(self, user_id: str, limit: int = 50) -> list[RideModel]:
        result = await self.session.execute(
            select(RideModel)
            .where(or_(RideModel.passenger_id == user_id, RideModel.rider_id == user_id))
            .order_by(RideModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_pending(self) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(RideModel)
            .where(RideModel.status == RideStatus.PENDING)
        )
        return result.scalar() or 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: str) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def apply_rating(self, user_id: str, stars: int) -> None:
        """Fold *stars* into the stored running mean in one UPDATE."""
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(
                rating=case(
                    (UserModel.total_ratings <= 0, float(stars)),
                    else_=(UserModel.rating * UserModel.total_ratings + stars)
                    / (UserModel.total_ratings + 1),
                ),
                total_ratings=UserModel.total_ratings + 1,
            )
            .execution_options(synchronize_session=False)
        )

    async def increment_total_rides(self, user_id: str) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(total_rides=UserModel.total_rides + 1)
            .execution_options(synchronize_session=False)
        )

    async def set_online(self, user_id: str, online: bool) -> None:
        await self.session.execute(
            update(UserModel).where(UserModel.id == user_id).values(is_online=online)
        )

    async def set_push_token(self, user_id: str, token: Optional[str]) -> None:
        await self.session.execute(
            update(UserModel).where(UserModel.id == user_id).values(push_token=token)
        )

    async def set_onboarding_status(
        self, user_id: str, status: OnboardingStatus
    ) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(onboarding_status=status)
        )


class NotificationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(
        self,
        *,
        user_id: str,
        kind: NotificationKind,
        title: str,
        body: str,
        ride_id: str | None,
        now: datetime,
    ) -> NotificationModel:
        notification = NotificationModel(
            user_id=user_id,
            kind=kind,
            title=title,
            body=body,
            ride_id=ride_id,
            read=False,
            created_at=now,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def list_for_user(self, user_id: str, limit: int = 100) -> list[NotificationModel]:
        result = await self.session.execute(
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def count_unread(self, user_id: str) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
        )
        return result.scalar() or 0

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        result = await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.id == notification_id,
                NotificationModel.user_id == user_id,
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def clear(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
