"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    PICKED_UP = "picked_up"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RATED = "rated"


class ActorRole(str, enum.Enum):
    PASSENGER = "passenger"
    RIDER = "rider"


class OnboardingStatus(str, enum.Enum):
    INCOMPLETE = "incomplete"
    PENDING = "pending"
    APPROVED = "approved"


class NotificationKind(str, enum.Enum):
    RIDE_ACCEPTED = "ride_accepted"
    RIDE_PICKED_UP = "ride_picked_up"
    RIDE_COMPLETED = "ride_completed"
    RIDE_CANCELLED = "ride_cancelled"
    NEW_RATING = "new_rating"


_BOTH = frozenset({ActorRole.PASSENGER, ActorRole.RIDER})

# State machine: (current, next) -> roles allowed to drive that edge
TRANSITION_ACTORS: dict[tuple[RideStatus, RideStatus], frozenset[ActorRole]] = {
    (RideStatus.PENDING, RideStatus.ACCEPTED): frozenset({ActorRole.RIDER}),
    (RideStatus.PENDING, RideStatus.CANCELLED): frozenset({ActorRole.PASSENGER}),
    (RideStatus.ACCEPTED, RideStatus.PICKED_UP): frozenset({ActorRole.RIDER}),
    (RideStatus.ACCEPTED, RideStatus.CANCELLED): _BOTH,
    (RideStatus.PICKED_UP, RideStatus.COMPLETED): frozenset({ActorRole.RIDER}),
    (RideStatus.PICKED_UP, RideStatus.CANCELLED): _BOTH,
    (RideStatus.COMPLETED, RideStatus.RATED): frozenset({ActorRole.PASSENGER}),
}

# Maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    status: {nxt for (cur, nxt) in TRANSITION_ACTORS if cur is status}
    for status in RideStatus
}

TERMINAL_STATUSES = frozenset(
    status for status, nexts in RIDE_TRANSITIONS.items() if not nexts
)

# Statuses in which a rider is bound to the ride and the trip is live
ACTIVE_STATUSES = frozenset({RideStatus.ACCEPTED, RideStatus.PICKED_UP})
