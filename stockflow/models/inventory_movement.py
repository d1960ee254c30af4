# stockflow/models/inventory_movement.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


class InventoryMovement(Base):
    """
    库存台账（只增不改不删）

    - quantity 恒为正数，方向由 movement_type 决定（in/release 为 +，out/reserve 为 -）
    - reference_table / reference_id：引起本次动账的业务单据
    - details: barcode / batch_id / notes 等自由字段

    对账口径：
        同一条码 / 库位下，approved 台账的有符号合计 == inventory_items.quantity
    """

    __tablename__ = "inventory_movements"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    warehouse_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    location_id: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # 冗余落一列条码，便于按条码对账（details 里也有一份）
    barcode: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True, index=True)

    movement_type: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="approved")

    reference_table: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    performed_by: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )

    details: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        sa.CheckConstraint("quantity > 0", name="ck_inventory_movements_qty_pos"),
        sa.Index("ix_movements_dims", "product_id", "warehouse_id", "location_id"),
        sa.Index("ix_movements_ref", "reference_table", "reference_id"),
        sa.Index("ix_movements_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Movement {self.movement_type} {self.status} product={self.product_id} "
            f"wh={self.warehouse_id} loc={self.location_id} code={self.barcode} "
            f"qty={self.quantity} ref={self.reference_table}:{self.reference_id}>"
        )
