# stockflow/models/inventory_item.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class InventoryItem(Base):
    """
    库存余额（按条码 / 库位的物化视图）

    - barcode 唯一：物理追溯的自然键
    - quantity 为唯一真实可用余额来源，DB 约束 quantity >= 0
    - quantity 归零 → status = out_of_stock；重新补回 → available
    - 只允许经 InventoryLedgerService 的条件更新（CAS）改动 quantity
    """

    __tablename__ = "inventory_items"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    warehouse_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False
    )
    location_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )

    barcode: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    color: Mapped[Optional[str]] = mapped_column(sa.String(32), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(sa.String(32), nullable=True)

    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="available")

    batch_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("batches.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=sa.func.now(),
    )

    __table_args__ = (
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_items_qty_nonneg"),
        sa.Index("ix_inventory_items_product_status", "product_id", "status"),
        sa.Index("ix_inventory_items_wh_loc", "warehouse_id", "location_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryItem code={self.barcode} product={self.product_id} "
            f"wh={self.warehouse_id} loc={self.location_id} qty={self.quantity} status={self.status}>"
        )
