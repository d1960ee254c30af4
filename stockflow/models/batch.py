# stockflow/models/batch.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class Batch(Base):
    """
    批次：一次入库作业的单位（同商品 / 同规格 / 同库位的一组箱）

    - total_boxes / total_quantity：
        建批时按 箱数 × 每箱数量 预置；处理结束后按实际落库的箱复核（部分成功时会变小）
    - status: processing → completed | failed（cancelled 为人工作废保留值）
    - completed 之后逻辑只读：纠偏只能追加台账，不改历史
    """

    __tablename__ = "batches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    stock_in_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stock_in_requests.id", ondelete="RESTRICT"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    warehouse_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False
    )
    location_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )

    # 业务批次号（打印在箱标上），形如 B000123
    batch_number: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, unique=True)

    total_boxes: Mapped[int] = mapped_column(Integer, nullable=False)
    total_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="processing")

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("total_boxes >= 0", name="ck_batches_total_boxes_nonneg"),
        CheckConstraint("total_quantity >= 0", name="ck_batches_total_qty_nonneg"),
        Index("ix_batches_product_id", "product_id"),
        Index("ix_batches_stock_in_id", "stock_in_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Batch id={self.id} product={self.product_id} wh={self.warehouse_id} "
            f"loc={self.location_id} boxes={self.total_boxes} qty={self.total_quantity} "
            f"status={self.status}>"
        )
