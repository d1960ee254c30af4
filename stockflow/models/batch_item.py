# stockflow/models/batch_item.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class BatchItem(Base):
    """
    箱（批次明细）：一箱一码

    - barcode 全局唯一，与 inventory_items.barcode 一一对应
    - quantity 为入库时的箱内数量（历史事实）；当前余额看 inventory_items
    - status: available / reserved / consumed
    """

    __tablename__ = "batch_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    barcode: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    warehouse_id: Mapped[int] = mapped_column(Integer, ForeignKey("warehouses.id"), nullable=False)
    location_id: Mapped[int] = mapped_column(Integer, ForeignKey("locations.id"), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="available")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_batch_items_qty_pos"),
        Index("ix_batch_items_batch_id", "batch_id"),
    )

    def __repr__(self) -> str:
        return f"<BatchItem id={self.id} batch={self.batch_id} code={self.barcode} qty={self.quantity}>"
