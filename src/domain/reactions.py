"""
Transition reactions
====================

Pure decisions about what should *happen* when a ride changes status.
Nothing here touches the store, the event bus or a socket; the
subscription adapters in ``src.services.sync`` feed observed statuses in
and carry the returned effects out.

Two audiences
-------------
* **The observing client** -- ``decide_effects(role, previous, current)``
  returns the navigation / alert / exit effects for a passenger or rider
  screen that just saw *current* after *previous*.
* **The counterparty inbox** -- ``counterparty_notice(status, by)`` returns
  the notification the controller sends to the other side of a transition.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .enums import ActorRole, NotificationKind, RideStatus


class EffectKind(str, enum.Enum):
    NAVIGATE = "navigate"
    ALERT = "alert"
    EXIT = "exit"


@dataclass(frozen=True)
class SideEffect:
    kind: EffectKind
    target: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class Notice:
    kind: NotificationKind
    title: str
    body: str


def _alert(title: str, body: str) -> SideEffect:
    return SideEffect(EffectKind.ALERT, title=title, body=body)


def _navigate(target: str) -> SideEffect:
    return SideEffect(EffectKind.NAVIGATE, target=target)


_PASSENGER_EFFECTS: dict[RideStatus, tuple[SideEffect, ...]] = {
    RideStatus.ACCEPTED: (
        _alert("Driver Found", "Your driver is on the way!"),
        _navigate("rider_found"),
    ),
    RideStatus.PICKED_UP: (_navigate("ride_progress"),),
    RideStatus.COMPLETED: (
        _alert("Ride Completed", "Thanks for riding with us!"),
        _navigate("rate_ride"),
    ),
    RideStatus.RATED: (_navigate("home"),),
}

_RIDER_EFFECTS: dict[RideStatus, tuple[SideEffect, ...]] = {
    RideStatus.ACCEPTED: (_navigate("ride_progress"),),
    RideStatus.COMPLETED: (_navigate("ride_completed"),),
    RideStatus.RATED: (_alert("New Rating", "Your passenger rated the trip"),),
}


def decide_effects(
    role: ActorRole,
    previous: Optional[RideStatus],
    current: RideStatus,
    *,
    exit_delay_seconds: float = 3.0,
) -> list[SideEffect]:
    """Effects a *role* client performs on moving from *previous* to *current*.

    Repeated deliveries of the same status yield nothing.  On the first
    observation (*previous* is ``None``) the client is only put on the right
    screen; alerts describe an edge the client actually witnessed, so they
    are suppressed.
    """
    if previous is current:
        return []

    if current is RideStatus.CANCELLED:
        effects = [
            _alert("Ride Cancelled", "This ride has been cancelled"),
            SideEffect(EffectKind.EXIT, target="home", delay_seconds=exit_delay_seconds),
        ]
    else:
        table = _PASSENGER_EFFECTS if role is ActorRole.PASSENGER else _RIDER_EFFECTS
        effects = list(table.get(current, ()))

    if previous is None:
        effects = [e for e in effects if e.kind is not EffectKind.ALERT]
    return effects


# ── Counterparty notifications ────────────────────────────────────────


_NOTICES: dict[RideStatus, Notice] = {
    RideStatus.ACCEPTED: Notice(
        NotificationKind.RIDE_ACCEPTED, "Ride Accepted", "{rider} is on the way!"
    ),
    RideStatus.PICKED_UP: Notice(
        NotificationKind.RIDE_PICKED_UP, "Trip Started", "Enjoy your ride."
    ),
    RideStatus.COMPLETED: Notice(
        NotificationKind.RIDE_COMPLETED,
        "Ride Completed",
        "You have arrived. Please rate your rider.",
    ),
    RideStatus.RATED: Notice(
        NotificationKind.NEW_RATING, "New Rating", "A passenger rated you {stars} stars"
    ),
}


def counterparty_notice(
    status: RideStatus,
    by: ActorRole,
    **context,
) -> Optional[Notice]:
    """Notification for the other side of a transition into *status*."""
    if status is RideStatus.CANCELLED:
        who = "passenger" if by is ActorRole.PASSENGER else "rider"
        return Notice(
            NotificationKind.RIDE_CANCELLED,
            "Ride Cancelled",
            f"The {who} has cancelled this ride.",
        )
    notice = _NOTICES.get(status)
    if notice is None:
        return None
    context.setdefault("rider", "Your rider")
    context.setdefault("stars", "")
    return Notice(notice.kind, notice.title, notice.body.format(**context))
