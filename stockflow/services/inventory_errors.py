# stockflow/services/inventory_errors.py
from __future__ import annotations

from typing import Any, Dict, List, Optional


class InventoryError(Exception):
    """
    库存内核统一异常基类：
    - code:    稳定的错误码（API 层原样透出为 error_code）
    - status:  建议的 HTTP 状态码
    - details: 行级定位信息（可选）
    """

    code = "INVENTORY_ERROR"
    status = 400

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[List[Dict[str, Any]]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = list(details or [])


class ValidationError(InventoryError):
    """入参非法（缺条码 / 非正数量 ...），写库前拒绝"""

    code = "VALIDATION_ERROR"
    status = 422


class NotFound(InventoryError):
    code = "NOT_FOUND"
    status = 404


class DuplicateBarcode(InventoryError):
    """条码已存在（唯一约束兜底命中）"""

    code = "DUPLICATE_BARCODE"
    status = 409

    def __init__(self, barcode: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"barcode already exists: {barcode}",
            details=[{"type": "barcode", "barcode": barcode}],
        )
        self.barcode = barcode


class BarcodeExhausted(InventoryError):
    """碰撞重试次数耗尽"""

    code = "BARCODE_EXHAUSTED"
    status = 409

    def __init__(self, attempts: int, last_candidate: Optional[str] = None) -> None:
        super().__init__(
            f"could not mint a unique barcode after {attempts} attempts",
            details=[{"type": "barcode", "attempts": attempts, "barcode": last_candidate}],
        )
        self.attempts = attempts
        self.last_candidate = last_candidate


class InsufficientInventory(InventoryError):
    code = "INSUFFICIENT_INVENTORY"
    status = 409

    def __init__(
        self,
        *,
        requested: int,
        available: int,
        product_id: Optional[int] = None,
        barcode: Optional[str] = None,
    ) -> None:
        where = f"barcode={barcode}" if barcode else f"product={product_id}"
        super().__init__(
            f"insufficient inventory ({where}): requested={requested}, available={available}",
            details=[
                {
                    "type": "shortage",
                    "product_id": product_id,
                    "barcode": barcode,
                    "required_qty": int(requested),
                    "available_qty": int(available),
                    "short_qty": max(int(requested) - int(available), 0),
                }
            ],
        )
        self.requested = int(requested)
        self.available = int(available)
        self.product_id = product_id
        self.barcode = barcode


class InvalidTransition(InventoryError):
    code = "INVALID_TRANSITION"
    status = 409

    def __init__(self, kind: str, current: str, target: str) -> None:
        super().__init__(
            f"{kind}: illegal status transition {current} -> {target}",
            details=[{"type": "state", "kind": kind, "from": current, "to": target}],
        )
        self.kind = kind
        self.current = current
        self.target = target


class PersistenceError(InventoryError):
    """存储层失败（事务已回滚）"""

    code = "PERSISTENCE_ERROR"
    status = 500


class ReservationInUse(InventoryError):
    """预留仍挂着未结出库单（pending / approved / processing）"""

    code = "RESERVATION_IN_USE"
    status = 409

    def __init__(self, reservation_id: int, stock_out_ids: List[int]) -> None:
        super().__init__(
            f"reservation {reservation_id} has open stock-out requests: {stock_out_ids}",
            details=[{"type": "state", "kind": "reservation", "stock_out_ids": list(stock_out_ids)}],
        )
        self.reservation_id = reservation_id
        self.stock_out_ids = list(stock_out_ids)
