# stockflow/models/stock_out.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class StockOutRequest(Base):
    """
    出库申请（两阶段：审批只锁定意图，履约才真正扣库存）

    状态机：
        pending → approved | rejected
        approved → processing → completed
        approved → completed（直接履约）
    约束：approved_quantity <= quantity，且审批当刻不超过商品可用合计。
    """

    __tablename__ = "stock_out_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    approved_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    destination: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="normal")

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    requested_by: Mapped[str] = mapped_column(String(64), nullable=False)
    approved_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejected_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    completed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    reservation_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("reserve_stocks.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_out_requests_qty_pos"),
        CheckConstraint(
            "approved_quantity IS NULL OR (approved_quantity > 0 AND approved_quantity <= quantity)",
            name="ck_stock_out_requests_approved_qty",
        ),
        Index("ix_stock_out_requests_product_status", "product_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockOutRequest id={self.id} product={self.product_id} qty={self.quantity} "
            f"approved={self.approved_quantity} status={self.status}>"
        )


class StockOutLine(Base):
    """出库履约明细：一次履约中每个被扣减的条码一行。"""

    __tablename__ = "stock_out_lines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    stock_out_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stock_out_requests.id", ondelete="CASCADE"), nullable=False
    )
    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    processed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_stock_out_lines_qty_pos"),
        Index("ix_stock_out_lines_stock_out", "stock_out_id"),
    )
