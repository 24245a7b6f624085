"""Unit tests for the tagged trip state machine and draft validation."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from ridehail.domain.entities import (
    Assigned,
    Cancelled,
    Completed,
    Ongoing,
    Pending,
    Rating,
    TripDraft,
    check_request_move,
    load_state,
    state_columns,
    status_of,
    transition,
)
from ridehail.domain.enums import (
    REQUEST_TRANSITIONS,
    TRIP_TRANSITIONS,
    RequestStatus,
    TripEvent,
    TripStatus,
)
from ridehail.domain.errors import InvalidTransition, ValidationError

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def _draft(**overrides) -> TripDraft:
    values = dict(
        user_id=1,
        pickup_location="Olaya",
        dropoff_location="Riyadh Park",
        pickup_lat=24.69,
        pickup_lng=46.68,
        dropoff_lat=24.75,
        dropoff_lng=46.62,
        cost=30.0,
    )
    values.update(overrides)
    return TripDraft(**values)


class TestTransitions:
    # ── Valid transitions ─────────────────────────────────────────

    def test_pending_to_assigned(self):
        state = transition(Pending(), TripEvent.ASSIGN, now=NOW, driver_id=7)
        assert state == Assigned(7)

    def test_assigned_to_ongoing_keeps_driver(self):
        state = transition(Assigned(7), TripEvent.START, now=NOW)
        assert state == Ongoing(7, NOW)

    def test_assigned_reject_returns_to_pending(self):
        assert transition(Assigned(7), TripEvent.REJECT, now=NOW) == Pending()

    def test_ongoing_to_completed(self):
        state = transition(Ongoing(7, NOW), TripEvent.COMPLETE, now=NOW)
        assert state == Completed(7, NOW)

    def test_rate_completed_trip(self):
        state = transition(
            Completed(7, NOW), TripEvent.RATE, now=NOW, rating=Rating(5, "great")
        )
        assert state.rating == Rating(5, "great")
        assert state.completed_at == NOW

    @pytest.mark.parametrize("state", [Pending(), Assigned(7), Ongoing(7, NOW)])
    def test_cancel_from_open_states(self, state):
        assert transition(state, TripEvent.CANCEL, now=NOW) == Cancelled(NOW)

    # ── Invalid transitions ───────────────────────────────────────

    def test_pending_cannot_complete(self):
        with pytest.raises(InvalidTransition):
            transition(Pending(), TripEvent.COMPLETE, now=NOW)

    def test_cancelled_is_terminal(self):
        for event in TripEvent:
            with pytest.raises(InvalidTransition):
                transition(Cancelled(NOW), event, now=NOW)

    def test_completed_cannot_be_cancelled(self):
        with pytest.raises(InvalidTransition):
            transition(Completed(7, NOW), TripEvent.CANCEL, now=NOW)

    def test_rating_non_completed_trip(self):
        with pytest.raises(InvalidTransition, match="Only completed trips can be rated"):
            transition(Ongoing(7, NOW), TripEvent.RATE, now=NOW, rating=Rating(4))

    def test_second_rating_rejected(self):
        rated = Completed(7, NOW, Rating(4))
        with pytest.raises(InvalidTransition, match="already been rated"):
            transition(rated, TripEvent.RATE, now=NOW, rating=Rating(5))

    def test_assign_requires_driver(self):
        with pytest.raises(ValidationError):
            transition(Pending(), TripEvent.ASSIGN, now=NOW)

    def test_table_and_transition_agree(self):
        states = {
            TripStatus.PENDING: Pending(),
            TripStatus.ASSIGNED: Assigned(7),
            TripStatus.ONGOING: Ongoing(7, NOW),
            TripStatus.COMPLETED: Completed(7, NOW),
            TripStatus.CANCELLED: Cancelled(NOW),
        }
        for status, allowed in TRIP_TRANSITIONS.items():
            for event, target in allowed.items():
                nxt = transition(
                    states[status], event, now=NOW, driver_id=7, rating=Rating(3)
                )
                assert status_of(nxt) is target


class TestRequestTransitions:
    def test_request_never_returns_to_waiting(self):
        for targets in REQUEST_TRANSITIONS.values():
            assert RequestStatus.WAITING not in targets

    def test_accepted_only_completes_or_cancels(self):
        assert REQUEST_TRANSITIONS[RequestStatus.ACCEPTED] == {
            RequestStatus.COMPLETED,
            RequestStatus.CANCELLED,
        }

    def test_move_allowed(self):
        check_request_move(["waiting"], "expired")
        check_request_move(["waiting", "accepted"], "cancelled")

    def test_move_back_to_waiting_rejected(self):
        with pytest.raises(InvalidTransition, match="accepted to waiting"):
            check_request_move(["accepted"], "waiting")

    def test_move_checks_every_expected_status(self):
        with pytest.raises(InvalidTransition):
            check_request_move(["waiting", "accepted"], "expired")

    def test_unknown_target(self):
        with pytest.raises(ValidationError):
            check_request_move(["waiting"], "lost")


class TestPersistedColumns:
    def test_pending_clears_driver_and_phase(self):
        columns = state_columns(Pending())
        assert columns == {
            "status": "pending",
            "trip_status": None,
            "driver_id": None,
            "driver_name": None,
        }

    def test_started_phase_written_with_ongoing(self):
        columns = state_columns(Ongoing(7, NOW))
        assert columns["status"] == "ongoing"
        assert columns["trip_status"] == "started"

    def test_rated_columns(self):
        columns = state_columns(Completed(7, NOW, Rating(4, "ok")))
        assert columns["trip_status"] == "rated"
        assert columns["rating"] == 4
        assert columns["review"] == "ok"

    def test_load_rated_row(self):
        row = SimpleNamespace(
            status="completed",
            trip_status="rated",
            driver_id=7,
            rating=5,
            review=None,
            completed_at=NOW.replace(tzinfo=None),
            started_at=None,
            created_at=None,
            cancelled_at=None,
        )
        state = load_state(row)
        assert state == Completed(7, NOW, Rating(5))

    def test_load_ongoing_falls_back_to_created_at(self):
        row = SimpleNamespace(
            status="ongoing", trip_status="started", driver_id=7,
            started_at=None, created_at=NOW,
        )
        assert load_state(row) == Ongoing(7, NOW)


class TestRating:
    @pytest.mark.parametrize("score", [0, 6, -1])
    def test_out_of_range(self, score):
        with pytest.raises(ValidationError):
            Rating(score)

    def test_bounds_accepted(self):
        assert Rating(1).score == 1
        assert Rating(5).score == 5


class TestTripDraft:
    def test_valid_draft(self):
        _draft().validate()

    def test_missing_label(self):
        with pytest.raises(ValidationError):
            _draft(pickup_location="").validate()

    def test_non_finite_coordinate(self):
        with pytest.raises(ValidationError):
            _draft(pickup_lat=float("nan")).validate()

    def test_missing_coordinate(self):
        with pytest.raises(ValidationError):
            _draft(dropoff_lng=None).validate()

    def test_latitude_range(self):
        with pytest.raises(ValidationError):
            _draft(dropoff_lat=91.0).validate()

    def test_unknown_car_type(self):
        with pytest.raises(ValidationError):
            _draft(car_type="helicopter").validate()

    def test_negative_cost(self):
        with pytest.raises(ValidationError):
            _draft(cost=-1.0).validate()
