"""
Ride Lifecycle Controller
=========================

The operations both client roles call to move a ride through its life:

    create_ride      passenger   (none)     -> pending
    claim_ride       rider       pending    -> accepted      first writer wins
    advance_status   rider       accepted   -> picked_up -> completed
    cancel_ride      either      pending | accepted | picked_up -> cancelled
    submit_rating    passenger   completed  -> rated

Write discipline
----------------
Every transition is a single conditional UPDATE keyed on the status the
caller observed (``RideStore.update(expected_status=...)``).  Nothing is
applied locally before the store acknowledges; a lost race leaves the ride
exactly as the winner wrote it.  For the claim this is what guarantees one
rider per ride: two concurrent claims both read ``pending``, but only one
UPDATE still matches ``status = 'pending'`` when it executes.

Outcomes
--------
Expected failures are *returned*, not raised:

* ``ALREADY_TAKEN``       -- claim lost to another rider
* ``INVALID_TRANSITION``  -- illegal edge, wrong role, or the ride moved on
* ``WRITE_FAILED``        -- the database rejected or dropped the write;
                             nothing changed, the caller may retry

Raised: ``RideNotFound``, ``RideValidationError`` (before any store call),
``ActorNotPermitted`` (caller is not a party to the ride),
``RiderNotApproved`` (onboarding gate), ``StoreUnavailable`` (reads).

After a successful write the counterparty is notified through the
``NotificationDispatcher``; that path never fails the transition.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.domain.entities import (
    ActorNotPermitted,
    InvalidStateTransition,
    Location,
    Ride,
    RideValidationError,
)
from src.domain.enums import (
    ACTIVE_STATUSES,
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    ActorRole,
    OnboardingStatus,
    RideStatus,
)
from src.domain.reactions import counterparty_notice
from src.infrastructure.events import Unsubscribe
from src.infrastructure.repositories import UserRepository, rider_info_from_user
from src.infrastructure.store import (
    RideCallback,
    RideListCallback,
    RideNotFound,
    RideStore,
    utcnow,
)
from src.services.notifications import NotificationDispatcher
from src.services.session import SessionContext

logger = logging.getLogger(__name__)


class RiderNotApproved(Exception):
    """Raised when a rider whose onboarding is not approved tries to work."""


class StoreUnavailable(Exception):
    """Raised when a read or create cannot reach the database."""


class TransitionResult(str, enum.Enum):
    OK = "ok"
    ALREADY_TAKEN = "already_taken"
    INVALID_TRANSITION = "invalid_transition"
    WRITE_FAILED = "write_failed"


@dataclass(frozen=True)
class TransitionOutcome:
    result: TransitionResult
    ride: Optional[Ride] = None

    @property
    def ok(self) -> bool:
        return self.result is TransitionResult.OK


_STAMP_FIELD = {
    RideStatus.ACCEPTED: "accepted_at",
    RideStatus.PICKED_UP: "picked_up_at",
    RideStatus.COMPLETED: "completed_at",
    RideStatus.CANCELLED: "cancelled_at",
    RideStatus.RATED: "rated_at",
}


def _claim_refused(ride: Ride) -> TransitionOutcome:
    # A ride that is over is not "taken", it is gone
    if ride.status in TERMINAL_STATUSES:
        return TransitionOutcome(TransitionResult.INVALID_TRANSITION, ride)
    return TransitionOutcome(TransitionResult.ALREADY_TAKEN, ride)


class RideLifecycleController:
    def __init__(
        self,
        store: RideStore,
        notifier: NotificationDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.store = store
        self.notifier = notifier
        self._session_factory = session_factory

    # ── Reads ─────────────────────────────────────────────────────────

    async def get_ride(self, ride_id: str) -> Ride:
        try:
            ride = await self.store.get(ride_id)
        except DBAPIError as exc:
            logger.exception("Could not load ride %s", ride_id)
            raise StoreUnavailable(str(exc)) from exc
        if ride is None:
            raise RideNotFound(ride_id)
        return ride

    async def ride_history(self, session: SessionContext, limit: int = 50) -> list[Ride]:
        try:
            return await self.store.list_for_user(session.user_id, limit)
        except DBAPIError as exc:
            logger.exception("Could not load ride history for %s", session.user_id)
            raise StoreUnavailable(str(exc)) from exc

    # ── Passenger: request ────────────────────────────────────────────

    async def create_ride(
        self,
        session: SessionContext,
        pickup,
        dropoff,
        fare: Optional[float] = None,
        estimated_duration: Optional[float] = None,
    ) -> Ride:
        if not session.is_passenger:
            raise ActorNotPermitted("Only passengers can request rides")
        pickup = Location.parse(pickup)
        dropoff = Location.parse(dropoff)
        if fare is not None and fare < 0:
            raise RideValidationError("Fare cannot be negative")
        if estimated_duration is not None and estimated_duration < 0:
            raise RideValidationError("Estimated duration cannot be negative")

        try:
            ride = await self.store.create(
                passenger_id=session.user_id,
                pickup=pickup,
                dropoff=dropoff,
                fare=fare,
                estimated_duration=estimated_duration,
            )
        except DBAPIError as exc:
            logger.exception("Could not create ride for %s", session.user_id)
            raise StoreUnavailable(str(exc)) from exc
        logger.info("Ride %s requested by %s", ride.id, session.user_id)
        return ride

    # ── Rider: claim ──────────────────────────────────────────────────

    async def claim_ride(self, session: SessionContext, ride_id: str) -> TransitionOutcome:
        if not session.is_rider:
            raise ActorNotPermitted("Only riders can accept rides")
        profile = await self._approved_rider(session.user_id)
        ride = await self.get_ride(ride_id)
        if ride.status is not RideStatus.PENDING:
            return _claim_refused(ride)

        values = {
            "status": RideStatus.ACCEPTED,
            "rider_id": session.user_id,
            "rider_info": asdict(profile),
            "accepted_at": utcnow(),
        }
        try:
            claimed = await self.store.update(
                ride_id, values, expected_status=RideStatus.PENDING
            )
        except DBAPIError:
            logger.exception("Claim of ride %s by %s failed", ride_id, session.user_id)
            return TransitionOutcome(TransitionResult.WRITE_FAILED, ride)

        if claimed is None:
            current = await self.get_ride(ride_id)
            logger.info(
                "Rider %s lost the claim on ride %s (now %s)",
                session.user_id,
                ride_id,
                current.status.value,
            )
            return _claim_refused(current)

        logger.info("Ride %s claimed by rider %s", ride_id, session.user_id)
        await self._notify_counterparty(
            claimed, RideStatus.ACCEPTED, session.role, rider=profile.name
        )
        return TransitionOutcome(TransitionResult.OK, claimed)

    # ── Generic forward moves ─────────────────────────────────────────

    async def advance_status(
        self,
        session: SessionContext,
        ride_id: str,
        target: RideStatus,
    ) -> TransitionOutcome:
        """Drive *ride_id* to *target* on behalf of *session*.

        ``accepted`` and ``cancelled`` are routed to ``claim_ride`` and
        ``cancel_ride``.  ``rated`` needs a star value, so it is only
        reachable through ``submit_rating``.  Out of ``cancelled`` or
        ``rated`` every target is refused, whoever asks.
        """
        target = RideStatus(target)
        ride = await self.get_ride(ride_id)
        if ride.status in TERMINAL_STATUSES or target in (
            RideStatus.RATED,
            RideStatus.PENDING,
        ):
            return TransitionOutcome(TransitionResult.INVALID_TRANSITION, ride)
        if target is RideStatus.ACCEPTED:
            return await self.claim_ride(session, ride_id)
        if target is RideStatus.CANCELLED:
            return await self.cancel_ride(session, ride_id)

        in_transaction = None
        if target is RideStatus.COMPLETED:

            async def in_transaction(db: AsyncSession, model) -> None:
                await UserRepository(db).increment_total_rides(model.rider_id)

        return await self._transition(
            session, ride_id, target, {}, in_transaction=in_transaction
        )

    async def cancel_ride(
        self,
        session: SessionContext,
        ride_id: str,
        reason: Optional[str] = None,
    ) -> TransitionOutcome:
        reason = reason.strip() if reason else None
        values = {
            "cancelled_by": session.role,
            "cancellation_reason": reason or None,
        }
        return await self._transition(session, ride_id, RideStatus.CANCELLED, values)

    async def submit_rating(
        self,
        session: SessionContext,
        ride_id: str,
        stars: int,
        feedback: Optional[str] = None,
    ) -> TransitionOutcome:
        if isinstance(stars, bool) or not isinstance(stars, int) or not 1 <= stars <= 5:
            raise RideValidationError("Rating must be a whole number from 1 to 5")
        feedback = feedback.strip() if feedback else None
        values = {"passenger_rating": stars, "passenger_feedback": feedback or None}

        async def fold_into_rider_rating(db: AsyncSession, model) -> None:
            await UserRepository(db).apply_rating(model.rider_id, stars)

        return await self._transition(
            session,
            ride_id,
            RideStatus.RATED,
            values,
            in_transaction=fold_into_rider_rating,
            stars=stars,
        )

    # ── Rider: live position ──────────────────────────────────────────

    async def update_rider_location(
        self,
        session: SessionContext,
        ride_id: str,
        latitude: float,
        longitude: float,
    ) -> TransitionOutcome:
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise RideValidationError("Coordinates out of range")
        ride = await self.get_ride(ride_id)
        if not session.is_rider or ride.rider_id != session.user_id:
            raise ActorNotPermitted("Only the assigned rider can report location")
        if ride.status not in ACTIVE_STATUSES:
            return TransitionOutcome(TransitionResult.INVALID_TRANSITION, ride)
        try:
            updated = await self.store.update(
                ride_id,
                {"rider_lat": latitude, "rider_lng": longitude},
                expected_status=ride.status,
            )
        except DBAPIError:
            logger.exception("Location update for ride %s failed", ride_id)
            return TransitionOutcome(TransitionResult.WRITE_FAILED, ride)
        if updated is None:
            return TransitionOutcome(
                TransitionResult.INVALID_TRANSITION, await self.get_ride(ride_id)
            )
        return TransitionOutcome(TransitionResult.OK, updated)

    # ── Rider presence / device ───────────────────────────────────────

    async def set_rider_online(self, session: SessionContext, online: bool) -> None:
        if not session.is_rider:
            raise ActorNotPermitted("Only riders can go online")
        if online:
            await self._approved_rider(session.user_id)
        async with self._session_factory() as db:
            async with db.begin():
                await UserRepository(db).set_online(session.user_id, online)
        logger.info("Rider %s is now %s", session.user_id, "online" if online else "offline")

    async def register_push_token(self, session: SessionContext, token: Optional[str]) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                await UserRepository(db).set_push_token(session.user_id, token)

    # ── Subscriptions ─────────────────────────────────────────────────

    async def subscribe_ride(self, ride_id: str, on_change: RideCallback) -> Unsubscribe:
        try:
            return await self.store.subscribe(ride_id, on_change)
        except DBAPIError as exc:
            logger.exception("Could not attach a listener to ride %s", ride_id)
            raise StoreUnavailable(str(exc)) from exc

    async def pending_rides(self, session: SessionContext) -> list[Ride]:
        await self._online_rider(session)
        return await self.store.list_pending()

    async def subscribe_pending_rides(
        self, session: SessionContext, on_change: RideListCallback
    ) -> Unsubscribe:
        await self._online_rider(session)
        try:
            return await self.store.subscribe_pending(on_change)
        except DBAPIError as exc:
            logger.exception("Could not open the pending feed for %s", session.user_id)
            raise StoreUnavailable(str(exc)) from exc

    # ── Internals ─────────────────────────────────────────────────────

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory

    async def _online_rider(self, session: SessionContext) -> None:
        if not session.is_rider:
            raise ActorNotPermitted("Only riders can watch ride requests")
        async with self._session_factory() as db:
            user = await UserRepository(db).get_by_id(session.user_id)
        if user is None or OnboardingStatus(user.onboarding_status) is not OnboardingStatus.APPROVED:
            raise RiderNotApproved(session.user_id)
        if not user.is_online:
            raise ActorNotPermitted("Go online to receive ride requests")

    async def _approved_rider(self, user_id: str):
        async with self._session_factory() as db:
            user = await UserRepository(db).get_by_id(user_id)
        if user is None:
            raise ActorNotPermitted("Rider profile not found")
        if OnboardingStatus(user.onboarding_status) is not OnboardingStatus.APPROVED:
            raise RiderNotApproved(user_id)
        return rider_info_from_user(user)

    async def _transition(
        self,
        session: SessionContext,
        ride_id: str,
        target: RideStatus,
        values: dict,
        in_transaction=None,
        **notice_context,
    ) -> TransitionOutcome:
        ride = await self.get_ride(ride_id)
        # Terminal and out-of-order targets are refused before anything else
        if target not in RIDE_TRANSITIONS[ride.status]:
            logger.info(
                "Rejected %s -> %s on ride %s", ride.status.value, target.value, ride_id
            )
            return TransitionOutcome(TransitionResult.INVALID_TRANSITION, ride)
        # Wrong role for the edge is an invalid move; wrong person is forbidden
        try:
            ride.check_transition(target, session.role)
        except (InvalidStateTransition, ActorNotPermitted) as exc:
            logger.info("Rejected transition on ride %s: %s", ride_id, exc)
            return TransitionOutcome(TransitionResult.INVALID_TRANSITION, ride)
        owner = ride.passenger_id if session.is_passenger else ride.rider_id
        if owner != session.user_id:
            raise ActorNotPermitted(
                f"{session.user_id} is not the {session.role.value} of ride {ride_id}"
            )

        values = {**values, "status": target, _STAMP_FIELD[target]: utcnow()}
        try:
            updated = await self.store.update(
                ride_id,
                values,
                expected_status=ride.status,
                in_transaction=in_transaction,
            )
        except DBAPIError:
            logger.exception(
                "Write of %s -> %s on ride %s failed",
                ride.status.value,
                target.value,
                ride_id,
            )
            return TransitionOutcome(TransitionResult.WRITE_FAILED, ride)

        if updated is None:
            current = await self.get_ride(ride_id)
            logger.info(
                "Ride %s moved to %s before %s could be applied",
                ride_id,
                current.status.value,
                target.value,
            )
            return TransitionOutcome(TransitionResult.INVALID_TRANSITION, current)

        logger.info(
            "Ride %s: %s -> %s by %s",
            ride_id,
            ride.status.value,
            target.value,
            session.role.value,
        )
        await self._notify_counterparty(updated, target, session.role, **notice_context)
        return TransitionOutcome(TransitionResult.OK, updated)

    async def _notify_counterparty(
        self, ride: Ride, status: RideStatus, by: ActorRole, **context
    ) -> None:
        recipient = ride.counterparty_of(by)
        notice = counterparty_notice(status, by, **context)
        if recipient is None or notice is None:
            return
        try:
            await self.notifier.notify(
                recipient, notice.kind, notice.title, notice.body, ride.id
            )
        except Exception:
            logger.exception("Notification for ride %s could not be sent", ride.id)


def build_controller(
    session_factory: async_sessionmaker[AsyncSession],
    bus,
    push_worker=None,
) -> RideLifecycleController:
    """Wire store, notifier and controller around one session factory and bus."""
    notifier = NotificationDispatcher(
        session_factory,
        bus,
        push_worker=push_worker,
        push_client=push_worker.client if push_worker else None,
    )
    return RideLifecycleController(RideStore(session_factory, bus), notifier, session_factory)
