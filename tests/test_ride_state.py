"""Unit tests for ride entity state transitions (State Pattern)."""

import itertools

import pytest

from src.domain.entities import ActorNotPermitted, InvalidStateTransition, Ride
from src.domain.enums import (
    RIDE_TRANSITIONS,
    TERMINAL_STATUSES,
    ActorRole,
    RideStatus,
)

PASSENGER = ActorRole.PASSENGER
RIDER = ActorRole.RIDER

# Position of each status along the forward path; cancelled sits after every
# status it can be reached from.
_RANK = {
    RideStatus.PENDING: 0,
    RideStatus.ACCEPTED: 1,
    RideStatus.PICKED_UP: 2,
    RideStatus.COMPLETED: 3,
    RideStatus.RATED: 4,
    RideStatus.CANCELLED: 3,
}


class TestRideStateMachine:
    def test_initial_status_is_pending(self):
        ride = Ride()
        assert ride.status == RideStatus.PENDING

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "current, target, actor",
        [
            (RideStatus.PENDING, RideStatus.ACCEPTED, RIDER),
            (RideStatus.PENDING, RideStatus.CANCELLED, PASSENGER),
            (RideStatus.ACCEPTED, RideStatus.PICKED_UP, RIDER),
            (RideStatus.ACCEPTED, RideStatus.CANCELLED, PASSENGER),
            (RideStatus.ACCEPTED, RideStatus.CANCELLED, RIDER),
            (RideStatus.PICKED_UP, RideStatus.CANCELLED, PASSENGER),
            (RideStatus.PICKED_UP, RideStatus.CANCELLED, RIDER),
            (RideStatus.PICKED_UP, RideStatus.COMPLETED, RIDER),
            (RideStatus.COMPLETED, RideStatus.RATED, PASSENGER),
        ],
    )
    def test_allowed_moves(self, current, target, actor):
        ride = Ride(status=current)
        ride.check_transition(target, actor)
        assert ride.status == current

    # ── Invalid transitions ───────────────────────────────────────

    def test_pending_to_completed_fails(self):
        with pytest.raises(InvalidStateTransition):
            Ride(status=RideStatus.PENDING).check_transition(RideStatus.COMPLETED, RIDER)

    def test_completed_cannot_be_cancelled(self):
        with pytest.raises(InvalidStateTransition):
            Ride(status=RideStatus.COMPLETED).check_transition(
                RideStatus.CANCELLED, PASSENGER
            )

    def test_illegal_edge_is_reported_before_role(self):
        # accepted -> rated skips two steps, whoever asks
        with pytest.raises(InvalidStateTransition):
            Ride(status=RideStatus.ACCEPTED).check_transition(RideStatus.RATED, RIDER)

    # ── Actor checks ──────────────────────────────────────────────

    @pytest.mark.parametrize(
        "current, target, actor",
        [
            (RideStatus.PENDING, RideStatus.ACCEPTED, PASSENGER),
            (RideStatus.PENDING, RideStatus.CANCELLED, RIDER),
            (RideStatus.PICKED_UP, RideStatus.COMPLETED, PASSENGER),
            (RideStatus.COMPLETED, RideStatus.RATED, RIDER),
        ],
    )
    def test_wrong_role_is_refused(self, current, target, actor):
        with pytest.raises(ActorNotPermitted):
            Ride(status=current).check_transition(target, actor)


class TestStateMachineProperties:
    def test_status_never_moves_backwards(self):
        for current, nexts in RIDE_TRANSITIONS.items():
            for nxt in nexts:
                assert _RANK[nxt] > _RANK[current], (current, nxt)

    def test_terminal_statuses_are_absorbing(self):
        assert TERMINAL_STATUSES == {RideStatus.CANCELLED, RideStatus.RATED}
        for status, target, actor in itertools.product(
            TERMINAL_STATUSES, RideStatus, ActorRole
        ):
            with pytest.raises(InvalidStateTransition):
                Ride(status=status).check_transition(target, actor)

    def test_every_edge_has_exactly_one_role_or_both_for_cancel(self):
        for current, nexts in RIDE_TRANSITIONS.items():
            for nxt in nexts:
                allowed = [
                    actor
                    for actor in ActorRole
                    if _can(Ride(status=current), nxt, actor)
                ]
                if nxt is RideStatus.CANCELLED and current is not RideStatus.PENDING:
                    assert set(allowed) == {PASSENGER, RIDER}
                else:
                    assert len(allowed) == 1, (current, nxt, allowed)


def _can(ride: Ride, target: RideStatus, actor: ActorRole) -> bool:
    try:
        ride.check_transition(target, actor)
    except (InvalidStateTransition, ActorNotPermitted):
        return False
    return True
