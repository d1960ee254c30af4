# tests/unit/test_request_state.py
from __future__ import annotations

import pytest

from stockflow.services.inventory_errors import InvalidTransition
from stockflow.services.request_state import (
    RESERVATION,
    STOCK_IN,
    STOCK_OUT,
    TRANSFER,
    assert_transition,
    can_transition,
    is_terminal,
)


@pytest.mark.parametrize(
    "kind, current, target",
    [
        (STOCK_IN, "pending", "processing"),
        (STOCK_IN, "pending", "rejected"),
        (STOCK_IN, "processing", "partial"),
        (STOCK_OUT, "pending", "approved"),
        (STOCK_OUT, "approved", "processing"),
        (STOCK_OUT, "approved", "completed"),
        (STOCK_OUT, "processing", "completed"),
        (RESERVATION, "pending", "cancelled"),
        (TRANSFER, "pending", "approved"),
    ],
)
def test_allowed_transitions(kind, current, target):
    assert can_transition(kind, current, target)
    assert_transition(kind, current, target)


@pytest.mark.parametrize(
    "kind, current, target",
    [
        (STOCK_IN, "completed", "processing"),
        (STOCK_IN, "pending", "completed"),
        (STOCK_OUT, "pending", "completed"),
        (STOCK_OUT, "rejected", "approved"),
        (STOCK_OUT, "completed", "approved"),
        (RESERVATION, "cancelled", "completed"),
        (TRANSFER, "approved", "rejected"),
    ],
)
def test_illegal_transitions_raise(kind, current, target):
    assert not can_transition(kind, current, target)
    with pytest.raises(InvalidTransition) as ei:
        assert_transition(kind, current, target)
    assert ei.value.code == "INVALID_TRANSITION"
    assert ei.value.details[0]["from"] == current
    assert ei.value.details[0]["to"] == target


def test_terminal_states():
    for status in ("completed", "partial", "failed", "rejected"):
        assert is_terminal(STOCK_IN, status)
    assert not is_terminal(STOCK_IN, "processing")
    assert is_terminal(STOCK_OUT, "completed")
    assert not is_terminal(STOCK_OUT, "approved")


def test_unknown_kind():
    with pytest.raises(ValueError):
        can_transition("refund", "pending", "approved")
