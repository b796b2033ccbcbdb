"""
Subscription adapters.

Thin wiring between a store subscription and a client session: they keep
the "last observed" state and ask ``src.domain.reactions`` what to do, so a
snapshot delivered twice never navigates or alerts twice.
"""

from __future__ import annotations

from typing import Optional

from src.domain.entities import Ride
from src.domain.enums import ActorRole, RideStatus
from src.domain.reactions import EffectKind, SideEffect, decide_effects


class RideStatusWatcher:
    """Edge detector for one ride as seen by one role."""

    def __init__(self, role: ActorRole, exit_delay_seconds: float = 3.0):
        self.role = role
        self.exit_delay_seconds = exit_delay_seconds
        self.last_status: Optional[RideStatus] = None

    def observe(self, ride: Ride) -> list[SideEffect]:
        effects = decide_effects(
            self.role,
            self.last_status,
            ride.status,
            exit_delay_seconds=self.exit_delay_seconds,
        )
        self.last_status = ride.status
        return effects


class PendingRideFeed:
    """Tracks which pending rides a rider has already been alerted about."""

    def __init__(self):
        self.seen: set[str] = set()
        self._primed = False

    def observe(self, rides: list[Ride]) -> list[SideEffect]:
        current = {r.id for r in rides}
        fresh = current - self.seen
        self.seen = current
        if not self._primed:
            # Requests already waiting when the rider came online are listed, not alerted
            self._primed = True
            return []
        return [
            SideEffect(
                EffectKind.ALERT,
                target=ride_id,
                title="New Ride Request",
                body="A passenger is requesting a ride near you",
            )
            for ride_id in sorted(fresh)
        ]
