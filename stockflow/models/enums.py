# stockflow/models/enums.py
from __future__ import annotations

from enum import StrEnum


class MovementType(StrEnum):
    """
    台账动账类型（inventory_movements.movement_type）：

    - IN        入库（批次入库 / 移库目的端）
    - OUT       出库（出库履约 / 移库来源端）
    - RESERVE   预留占用（扣减可用余额）
    - RELEASE   预留释放（补回可用余额）
    - TRANSFER  移库（保留值：移库实际落账为成对的 OUT + IN）

    quantity 恒为正数，方向由类型决定，见 SIGN。
    """

    IN = "in"
    OUT = "out"
    RESERVE = "reserve"
    RELEASE = "release"
    TRANSFER = "transfer"

    @property
    def sign(self) -> int:
        return SIGN[self]


SIGN = {
    MovementType.IN: 1,
    MovementType.RELEASE: 1,
    MovementType.OUT: -1,
    MovementType.RESERVE: -1,
    MovementType.TRANSFER: 0,
}


class MovementStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ReferenceTable(StrEnum):
    """台账 reference_table：引起本次动账的业务单据"""

    STOCK_IN = "stock_in"
    STOCK_OUT = "stock_out"
    TRANSFER = "transfer"
    RESERVATION = "reservation"


class InventoryStatus(StrEnum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    OUT_OF_STOCK = "out_of_stock"


class BoxStatus(StrEnum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    CONSUMED = "consumed"


class BatchStatus(StrEnum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StockInStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"
    REJECTED = "rejected"


class StockInDetailStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class StockOutStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"


class StockOutPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class ReservationStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TransferStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
