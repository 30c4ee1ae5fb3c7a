"""
Tests for the shipment transition table.
"""

import pytest

from copallet.core.errors import InvalidTransition
from copallet.models.shipment import ShipmentStatus
from copallet.services.state_machine import (
    LifecycleAction,
    is_terminal,
    is_valid_walk,
    next_status,
    require_open_for_bidding,
    valid_actions,
    valid_targets,
)

S = ShipmentStatus
A = LifecycleAction


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current, action, expected",
        [
            (S.DRAFT, A.PUBLISH, S.OPEN),
            (S.OPEN, A.ACCEPT_BID, S.ASSIGNED),
            (S.OPEN, A.CANCEL, S.CANCELLED),
            (S.DRAFT, A.CANCEL, S.CANCELLED),
            (S.ASSIGNED, A.START_TRANSIT, S.IN_TRANSIT),
            (S.ASSIGNED, A.CANCEL, S.CANCELLED),
            (S.IN_TRANSIT, A.MARK_DELIVERED, S.DELIVERED),
        ],
    )
    def test_legal_transitions(self, current, action, expected):
        assert next_status(current, action) == expected
        assert action in valid_actions(current)

    def test_accepts_plain_strings(self):
        assert next_status("in-transit", A.MARK_DELIVERED) == S.DELIVERED

    @pytest.mark.parametrize(
        "current, action",
        [
            (S.DRAFT, A.ACCEPT_BID),
            (S.DRAFT, A.START_TRANSIT),
            (S.OPEN, A.PUBLISH),
            (S.OPEN, A.MARK_DELIVERED),
            (S.ASSIGNED, A.MARK_DELIVERED),
            (S.IN_TRANSIT, A.CANCEL),
            (S.DELIVERED, A.CANCEL),
            (S.CANCELLED, A.PUBLISH),
        ],
    )
    def test_illegal_transitions_raise(self, current, action):
        with pytest.raises(InvalidTransition):
            next_status(current, action)
        assert action not in valid_actions(current)

    def test_accept_on_non_open_uses_bidding_code(self):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(S.ASSIGNED, A.ACCEPT_BID)
        assert exc_info.value.code == "CPL-SHP-002"

    def test_other_illegal_transitions_use_generic_code(self):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(S.DELIVERED, A.CANCEL)
        assert exc_info.value.code == "CPL-SHP-001"

    def test_rejection_lists_allowed_actions(self):
        with pytest.raises(InvalidTransition) as exc_info:
            next_status(S.ASSIGNED, A.MARK_DELIVERED)
        assert exc_info.value.context["allowed_actions"] == ["cancel", "start_transit"]


class TestTerminalStates:
    @pytest.mark.parametrize("status", [S.DELIVERED, S.CANCELLED])
    def test_terminal_states_have_no_exits(self, status):
        assert is_terminal(status)
        assert valid_actions(status) == set()
        assert valid_targets(status) == set()

    @pytest.mark.parametrize("status", [S.DRAFT, S.OPEN, S.ASSIGNED, S.IN_TRANSIT])
    def test_non_terminal_states(self, status):
        assert not is_terminal(status)
        assert valid_actions(status)

    def test_cancel_reachable_only_before_transit(self):
        cancellable = {s for s in S if A.CANCEL in valid_actions(s)}
        assert cancellable == {S.DRAFT, S.OPEN, S.ASSIGNED}


class TestBiddingGuard:
    def test_open_allows_bidding(self):
        require_open_for_bidding(S.OPEN)

    @pytest.mark.parametrize("status", [S.DRAFT, S.ASSIGNED, S.IN_TRANSIT, S.DELIVERED, S.CANCELLED])
    def test_other_states_reject_bidding(self, status):
        with pytest.raises(InvalidTransition):
            require_open_for_bidding(status)


class TestWalks:
    def test_full_happy_path(self):
        assert is_valid_walk(["draft", "open", "assigned", "in-transit", "delivered"])

    def test_cancel_from_assigned(self):
        assert is_valid_walk(["draft", "open", "assigned", "cancelled"])

    def test_forward_skip_rejected(self):
        assert not is_valid_walk(["draft", "assigned"])

    def test_backward_move_rejected(self):
        assert not is_valid_walk(["draft", "open", "draft"])

    def test_must_start_at_draft(self):
        assert not is_valid_walk(["open", "assigned"])

    def test_nothing_after_terminal(self):
        assert not is_valid_walk(["draft", "cancelled", "open"])
