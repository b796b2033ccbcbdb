"""
Ride Record Store
=================

The document-store contract the lifecycle controller is written against:

* ``create(...)``                         -> new ``Ride`` (status PENDING)
* ``get(ride_id)``                        -> ``Ride`` | ``None``
* ``update(ride_id, values, expected_status=...)``
                                          -> ``Ride`` | ``None`` (precondition failed)
* ``subscribe(ride_id, on_snapshot)``     -> async unsubscribe
* ``subscribe_pending(on_snapshot)``      -> async unsubscribe

Writes go to PostgreSQL through the repositories; after the transaction
commits, the full document is published on the event bus.  Publishing is
best-effort: the write is already durable, so a bus failure is logged and
listeners catch up on their next delivery.

Delivery guarantees
-------------------
A subscription gets the current document on attach, then one document per
write.  Each document carries the row ``version``; anything not newer than
what was last delivered is dropped, so an attach-time read racing a live
event can never move a subscriber backwards.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .events import (
    RIDES_CHANNEL,
    EventBus,
    Unsubscribe,
    call_handler,
    ride_channel,
)
from .repositories import RideRepository, ride_from_model
from .models import RideModel
from src.domain.entities import Location, Ride
from src.domain.enums import RideStatus

logger = logging.getLogger(__name__)

RideCallback = Callable[[Ride], Union[None, Awaitable[None]]]
RideListCallback = Callable[[list[Ride]], Union[None, Awaitable[None]]]
TransactionHook = Callable[[AsyncSession, RideModel], Awaitable[None]]


class RideNotFound(Exception):
    """Raised when a ride id does not resolve."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideSubscription:
    """One consumer's view of one ride: ordered, de-duplicated, closable."""

    def __init__(self, on_snapshot: RideCallback):
        self._on_snapshot = on_snapshot
        self._last_version = 0
        self._detach: Optional[Unsubscribe] = None
        self.closed = False

    def bind(self, detach: Unsubscribe) -> None:
        self._detach = detach

    async def deliver(self, ride: Ride) -> None:
        if self.closed or ride.version <= self._last_version:
            return
        self._last_version = ride.version
        await call_handler(self._on_snapshot, ride)

    async def deliver_document(self, document: dict) -> None:
        await self.deliver(Ride.from_document(document))

    async def close(self) -> None:
        """Detach from the bus.  Safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._detach is not None:
            await self._detach()


class PendingRidesSubscription:
    """Live query ``status == pending``: re-delivers the whole result set."""

    def __init__(self, store: "RideStore", on_snapshot: RideListCallback):
        self._store = store
        self._on_snapshot = on_snapshot
        self._last_key: Optional[tuple] = None
        self._last_ids: set[str] = set()
        self._lock = asyncio.Lock()
        self._detach: Optional[Unsubscribe] = None
        self.closed = False

    def bind(self, detach: Unsubscribe) -> None:
        self._detach = detach

    async def refresh(self, document: Optional[dict] = None) -> None:
        # Serialised so result sets are delivered in the order they were read
        async with self._lock:
            if self.closed or not self._affects_result(document):
                return
            rides = await self._store.list_pending()
            key = tuple((r.id, r.version) for r in rides)
            if key == self._last_key:
                return
            self._last_key = key
            self._last_ids = {r.id for r in rides}
            await call_handler(self._on_snapshot, rides)

    def _affects_result(self, document: Optional[dict]) -> bool:
        """A write can only change the set if the ride is or was pending."""
        if document is None:
            return True
        return (
            document.get("status") == RideStatus.PENDING.value
            or document.get("id") in self._last_ids
        )

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._detach is not None:
            await self._detach()


class RideStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        bus: EventBus,
    ):
        self._session_factory = session_factory
        self.bus = bus

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, ride_id: str) -> Optional[Ride]:
        async with self._session_factory() as session:
            model = await RideRepository(session).get_by_id(ride_id)
            return ride_from_model(model) if model else None

    async def list_pending(self) -> list[Ride]:
        async with self._session_factory() as session:
            models = await RideRepository(session).get_pending_rides()
            return [ride_from_model(m) for m in models]

    async def list_for_user(self, user_id: str, limit: int = 50) -> list[Ride]:
        async with self._session_factory() as session:
            models = await RideRepository(session).get_rides_for_user(user_id, limit)
            return [ride_from_model(m) for m in models]

    # ── Writes ────────────────────────────────────────────────────────

    async def create(
        self,
        *,
        passenger_id: str,
        pickup: Location,
        dropoff: Location,
        fare: float | None = None,
        estimated_duration: float | None = None,
    ) -> Ride:
        async with self._session_factory() as session:
            async with session.begin():
                model = await RideRepository(session).create_ride(
                    passenger_id=passenger_id,
                    pickup=pickup,
                    dropoff=dropoff,
                    fare=fare,
                    estimated_duration=estimated_duration,
                    now=utcnow(),
                )
                ride = ride_from_model(model)
        await self._publish(ride)
        return ride

    async def update(
        self,
        ride_id: str,
        values: dict[str, Any],
        *,
        expected_status: RideStatus,
        in_transaction: Optional[TransactionHook] = None,
    ) -> Optional[Ride]:
        """
        Conditionally apply *values*; ``None`` if the status had moved on.

        *in_transaction* runs inside the same transaction after the
        conditional write succeeded, for writes that must commit or roll
        back together with it.
        """
        values = {**values, "updated_at": utcnow()}
        async with self._session_factory() as session:
            async with session.begin():
                repo = RideRepository(session)
                model = await repo.compare_and_set(ride_id, expected_status, values)
                if model is None:
                    return None
                if in_transaction is not None:
                    await in_transaction(session, model)
                ride = ride_from_model(model)
        await self._publish(ride)
        return ride

    async def _publish(self, ride: Ride) -> None:
        document = ride.to_document()
        try:
            await self.bus.publish(ride_channel(ride.id), document)
            await self.bus.publish(RIDES_CHANNEL, document)
        except Exception:
            logger.exception("Could not publish snapshot of ride %s", ride.id)

    # ── Live queries ──────────────────────────────────────────────────

    async def subscribe(self, ride_id: str, on_snapshot: RideCallback) -> Unsubscribe:
        subscription = RideSubscription(on_snapshot)
        # Attach before reading so no write between the two is missed
        subscription.bind(
            await self.bus.subscribe(ride_channel(ride_id), subscription.deliver_document)
        )
        try:
            ride = await self.get(ride_id)
            if ride is None:
                raise RideNotFound(ride_id)
            await subscription.deliver(ride)
        except BaseException:
            # The caller never gets an unsubscribe, so the listener goes here
            await subscription.close()
            raise
        return subscription.close

    async def subscribe_pending(self, on_snapshot: RideListCallback) -> Unsubscribe:
        subscription = PendingRidesSubscription(self, on_snapshot)
        subscription.bind(await self.bus.subscribe(RIDES_CHANNEL, subscription.refresh))
        try:
            await subscription.refresh()
        except BaseException:
            await subscription.close()
            raise
        return subscription.close
