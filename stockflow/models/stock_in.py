# stockflow/models/stock_in.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class StockInRequest(Base):
    """
    入库申请（现场提交 → 仓管处理）

    状态机：
        pending → processing → completed | partial | failed | rejected
        pending → rejected
    partial / failed 为终态，只能新开申请纠正，不自动重试。
    """

    __tablename__ = "stock_in_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    boxes: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False, default="manual")
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    processed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    processing_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("boxes > 0", name="ck_stock_in_requests_boxes_pos"),
        Index("ix_stock_in_requests_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<StockInRequest id={self.id} product={self.product_id} boxes={self.boxes} status={self.status}>"


class StockInDetail(Base):
    """
    入库处理逐箱结果（每处理一箱落一行）：

    - completed: barcode 非空，对应 batch_items / inventory_items 同码行
    - failed:    barcode 为空，error_code / error_message 记录失败原因
    """

    __tablename__ = "stock_in_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    stock_in_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stock_in_requests.id", ondelete="CASCADE"), nullable=False
    )
    batch_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("batches.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[int] = mapped_column(Integer, nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)

    barcode: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    size: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    processing_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    error_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (Index("ix_stock_in_details_stock_in", "stock_in_id", "processing_order"),)
