"""
Unit Tests for status transition rules
"""
import pytest

from app.core.status_config import (
    PickingSlipStatus,
    SalesOrderStatus,
    StatusTransitionError,
    get_allowed_transitions,
    is_valid_transition,
    validate_transition,
)


class TestTransitions:

    @pytest.mark.parametrize("entity,current,new", [
        ("picking slip", "pending", "in_progress"),
        ("picking slip", "in_progress", "complete"),
        ("job card", "in_progress", "on_hold"),
        ("job card", "on_hold", "in_progress"),
        ("transfer request", "in_transit", "received"),
        ("purchase order", "draft", "sent"),
        ("purchase order", "sent", "received"),
        ("sales order", "confirmed", "processing"),
        ("sales order", "processing", "confirmed"),
        ("sales order", "ready_to_ship", "processing"),
    ])
    def test_allowed(self, entity, current, new):
        assert is_valid_transition(entity, current, new) is True

    @pytest.mark.parametrize("entity,current,new", [
        ("picking slip", "pending", "complete"),
        ("picking slip", "complete", "pending"),
        ("job card", "pending", "complete"),
        ("transfer request", "pending", "received"),
        ("transfer request", "in_transit", "cancelled"),
        ("purchase order", "received", "cancelled"),
        ("sales order", "shipped", "processing"),
    ])
    def test_rejected(self, entity, current, new):
        assert is_valid_transition(entity, current, new) is False

    def test_same_status_is_always_valid(self):
        assert is_valid_transition("picking slip", "complete", "complete") is True

    def test_enum_members_and_strings_agree(self):
        assert is_valid_transition("picking slip", PickingSlipStatus.PENDING, "in_progress") is True
        assert is_valid_transition("sales order", "confirmed", SalesOrderStatus.PROCESSING) is True

    def test_terminal_state_has_no_exits(self):
        assert get_allowed_transitions("picking slip", "cancelled") == []

    def test_allowed_transitions_are_sorted(self):
        assert get_allowed_transitions("job card", "in_progress") == ["cancelled", "complete", "on_hold"]

    def test_validate_raises_with_allowed_list(self):
        with pytest.raises(StatusTransitionError) as exc_info:
            validate_transition("picking slip", "pending", "complete")

        error = exc_info.value
        assert error.allowed == ["cancelled", "in_progress"]
        assert "'pending' -> 'complete'" in str(error)

    def test_terminal_message(self):
        with pytest.raises(StatusTransitionError) as exc_info:
            validate_transition("transfer request", "received", "pending")

        assert "none (terminal state)" in str(exc_info.value)
