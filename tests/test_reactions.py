"""Unit tests for the pure transition-reaction decisions."""

import pytest

from src.domain.enums import ActorRole, NotificationKind, RideStatus
from src.domain.reactions import (
    EffectKind,
    counterparty_notice,
    decide_effects,
)

PASSENGER = ActorRole.PASSENGER
RIDER = ActorRole.RIDER


def _kinds(effects):
    return [(e.kind, e.target) for e in effects]


class TestDecideEffects:
    @pytest.mark.parametrize("role", [PASSENGER, RIDER])
    @pytest.mark.parametrize("status", list(RideStatus))
    def test_same_status_twice_does_nothing(self, role, status):
        assert decide_effects(role, status, status) == []

    def test_passenger_sees_driver_found(self):
        effects = decide_effects(PASSENGER, RideStatus.PENDING, RideStatus.ACCEPTED)
        assert _kinds(effects) == [
            (EffectKind.ALERT, None),
            (EffectKind.NAVIGATE, "rider_found"),
        ]
        assert effects[0].title == "Driver Found"

    def test_passenger_moves_to_progress_on_pickup(self):
        effects = decide_effects(PASSENGER, RideStatus.ACCEPTED, RideStatus.PICKED_UP)
        assert _kinds(effects) == [(EffectKind.NAVIGATE, "ride_progress")]

    def test_passenger_asked_to_rate_on_completion(self):
        effects = decide_effects(PASSENGER, RideStatus.PICKED_UP, RideStatus.COMPLETED)
        assert _kinds(effects)[-1] == (EffectKind.NAVIGATE, "rate_ride")

    def test_rider_navigates_on_claim_and_completion(self):
        assert _kinds(decide_effects(RIDER, RideStatus.PENDING, RideStatus.ACCEPTED)) == [
            (EffectKind.NAVIGATE, "ride_progress")
        ]
        assert _kinds(
            decide_effects(RIDER, RideStatus.PICKED_UP, RideStatus.COMPLETED)
        ) == [(EffectKind.NAVIGATE, "ride_completed")]

    def test_rider_alerted_when_rated(self):
        effects = decide_effects(RIDER, RideStatus.COMPLETED, RideStatus.RATED)
        assert [e.title for e in effects] == ["New Rating"]

    @pytest.mark.parametrize("role", [PASSENGER, RIDER])
    def test_cancellation_alerts_then_exits_after_delay(self, role):
        effects = decide_effects(
            role, RideStatus.ACCEPTED, RideStatus.CANCELLED, exit_delay_seconds=3.0
        )
        assert [e.kind for e in effects] == [EffectKind.ALERT, EffectKind.EXIT]
        assert effects[1].delay_seconds == 3.0
        assert effects[1].target == "home"

    def test_first_observation_navigates_without_alert(self):
        effects = decide_effects(PASSENGER, None, RideStatus.ACCEPTED)
        assert _kinds(effects) == [(EffectKind.NAVIGATE, "rider_found")]

    def test_first_observation_of_cancelled_ride_still_exits(self):
        effects = decide_effects(RIDER, None, RideStatus.CANCELLED)
        assert [e.kind for e in effects] == [EffectKind.EXIT]

    def test_pending_has_no_effects(self):
        assert decide_effects(PASSENGER, None, RideStatus.PENDING) == []


class TestCounterpartyNotice:
    def test_cancel_names_who_cancelled(self):
        notice = counterparty_notice(RideStatus.CANCELLED, RIDER)
        assert notice.kind is NotificationKind.RIDE_CANCELLED
        assert notice.body == "The rider has cancelled this ride."

    def test_accepted_mentions_rider(self):
        notice = counterparty_notice(RideStatus.ACCEPTED, RIDER, rider="Kwame")
        assert notice.body == "Kwame is on the way!"

    def test_accepted_without_name_uses_placeholder(self):
        notice = counterparty_notice(RideStatus.ACCEPTED, RIDER)
        assert notice.body == "Your rider is on the way!"

    def test_rating_mentions_stars(self):
        notice = counterparty_notice(RideStatus.RATED, PASSENGER, stars=4)
        assert notice.kind is NotificationKind.NEW_RATING
        assert notice.body == "A passenger rated you 4 stars"

    def test_pending_has_no_notice(self):
        assert counterparty_notice(RideStatus.PENDING, PASSENGER) is None
