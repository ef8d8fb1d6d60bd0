from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import InvalidStatusError, InvalidStatusTransition
from app.services.order_status import (
    build_tracker,
    can_advance,
    can_cancel,
    is_allowed_transition,
    next_status,
    parse_status,
    validate_transition,
)

CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "current, expected",
    [
        ("pending", "confirmed"),
        ("confirmed", "preparing"),
        ("preparing", "ready"),
        ("ready", "out_for_delivery"),
        ("out_for_delivery", "delivered"),
        ("delivered", "delivered"),
        ("cancelled", "cancelled"),
    ],
)
def test_advance_table(current, expected):
    assert next_status(current) == expected


def test_terminal_statuses_cannot_advance_or_cancel():
    for status in ("delivered", "cancelled"):
        assert not can_advance(status)
        assert not can_cancel(status)
    assert can_advance("ready")
    assert can_cancel("out_for_delivery")


def test_parse_status_rejects_unknown_values():
    assert parse_status("ready") == "ready"
    for value in ("bogus", "", None, 3, "PENDING"):
        with pytest.raises(InvalidStatusError):
            parse_status(value)


class TestValidateTransition:

    def test_next_stage_is_allowed(self):
        assert validate_transition("pending", "confirmed") == "confirmed"

    def test_same_status_is_allowed(self):
        assert validate_transition("preparing", "preparing") == "preparing"

    def test_cancel_from_non_terminal(self):
        assert validate_transition("ready", "cancelled") == "cancelled"

    def test_skipping_stages_is_rejected(self):
        with pytest.raises(InvalidStatusTransition) as exc:
            validate_transition("pending", "delivered")
        assert exc.value.status_code == 409

    def test_going_back_is_rejected(self):
        assert not is_allowed_transition("preparing", "confirmed")
        with pytest.raises(InvalidStatusTransition):
            validate_transition("preparing", "confirmed")

    def test_terminal_states_are_final(self):
        with pytest.raises(InvalidStatusTransition):
            validate_transition("delivered", "cancelled")
        with pytest.raises(InvalidStatusTransition):
            validate_transition("cancelled", "pending")

    def test_force_bypasses_the_table(self):
        assert validate_transition("cancelled", "pending", force=True) == "pending"

    def test_force_does_not_accept_unknown_status(self):
        with pytest.raises(InvalidStatusError):
            validate_transition("pending", "bogus", force=True)


class TestTracker:

    def test_preparing(self):
        view = build_tracker("preparing", CREATED, 45)

        assert view.current_index == 2
        assert [s.completed for s in view.stages] == [True, True, True, False, False]
        assert [s.current for s in view.stages] == [False, False, True, False, False]
        assert view.stages[2].estimated_at == CREATED + timedelta(minutes=20)
        assert view.stages[3].estimated_at is None
        assert view.estimated_delivery == CREATED + timedelta(minutes=45)

    def test_five_display_stages(self):
        view = build_tracker("pending", CREATED)
        assert [s.key for s in view.stages] == [
            "pending", "confirmed", "preparing", "out_for_delivery", "delivered",
        ]
        assert view.estimated_delivery is None

    def test_delivered_hides_estimate(self):
        view = build_tracker("delivered", CREATED, 45)
        assert view.current_index == 4
        assert all(s.completed for s in view.stages)
        assert view.estimated_delivery is None

    @pytest.mark.parametrize("status", ["ready", "cancelled", "weird"])
    def test_unmapped_statuses(self, status):
        view = build_tracker(status, CREATED, 45)
        assert view.current_index == -1
        assert not view.is_mapped
        assert not any(s.completed for s in view.stages)

    def test_custom_step(self):
        view = build_tracker("out_for_delivery", CREATED, step_minutes=15)
        assert view.stages[3].estimated_at == CREATED + timedelta(minutes=45)

    def test_naive_created_at_is_treated_as_utc(self):
        view = build_tracker("confirmed", CREATED.replace(tzinfo=None))
        assert view.stages[1].estimated_at == CREATED + timedelta(minutes=10)
