# stockflow/services/request_state.py
from __future__ import annotations

from typing import Dict, FrozenSet

from stockflow.models.enums import (
    ReservationStatus,
    StockInStatus,
    StockOutStatus,
    TransferStatus,
)
from stockflow.services.inventory_errors import InvalidTransition

STOCK_IN = "stock_in"
STOCK_OUT = "stock_out"
RESERVATION = "reservation"
TRANSFER = "transfer"

_S = StockInStatus
_O = StockOutStatus
_R = ReservationStatus
_T = TransferStatus

# kind -> current -> 允许的目标状态；未出现的状态即终态
TRANSITIONS: Dict[str, Dict[str, FrozenSet[str]]] = {
    STOCK_IN: {
        _S.PENDING: frozenset({_S.PROCESSING, _S.REJECTED}),
        _S.PROCESSING: frozenset({_S.COMPLETED, _S.PARTIAL, _S.FAILED, _S.REJECTED}),
    },
    STOCK_OUT: {
        _O.PENDING: frozenset({_O.APPROVED, _O.REJECTED}),
        _O.APPROVED: frozenset({_O.PROCESSING, _O.COMPLETED}),
        _O.PROCESSING: frozenset({_O.COMPLETED}),
    },
    RESERVATION: {
        _R.PENDING: frozenset({_R.COMPLETED, _R.CANCELLED}),
    },
    TRANSFER: {
        _T.PENDING: frozenset({_T.APPROVED, _T.REJECTED}),
    },
}


def can_transition(kind: str, current: str, target: str) -> bool:
    try:
        table = TRANSITIONS[kind]
    except KeyError:
        raise ValueError(f"unknown request kind: {kind}") from None
    return str(target) in table.get(str(current), frozenset())


def assert_transition(kind: str, current: str, target: str) -> None:
    """非法迁移（含终态再迁移）一律 InvalidTransition，调用方不落任何写。"""
    if not can_transition(kind, current, target):
        raise InvalidTransition(kind, str(current), str(target))


def is_terminal(kind: str, status: str) -> bool:
    return not TRANSITIONS[kind].get(str(status))
