# stockflow/models/reservation.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from stockflow.db.base import Base
from stockflow.utils.time import utcnow


class ReserveStock(Base):
    """
    客户预留（硬占用）：

    - 建单即扣减 inventory_items 可用余额，并写 reserve 台账
    - pending → completed（履约完成，终态）
    - pending → cancelled（按 allocations 逐条补回余额，写 release 台账）
    - completed 之后不允许取消
    """

    __tablename__ = "reserve_stocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False
    )
    customer_name: Mapped[str] = mapped_column(String(128), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reserve_stocks_qty_pos"),
        Index("ix_reserve_stocks_product_status", "product_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReserveStock id={self.id} product={self.product_id} qty={self.quantity} "
            f"customer={self.customer_name!r} status={self.status}>"
        )


class ReservationAllocation(Base):
    """
    预留来源明细：记录一张预留从哪些条码扣了多少，
    取消时按本表逐条补回、写 release 台账。
    """

    __tablename__ = "reservation_allocations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    reservation_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("reserve_stocks.id", ondelete="CASCADE"), nullable=False
    )
    barcode: Mapped[str] = mapped_column(String(64), nullable=False)
    warehouse_id: Mapped[int] = mapped_column(Integer, nullable=False)
    location_id: Mapped[int] = mapped_column(Integer, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_reservation_allocations_qty_pos"),
        Index("ix_resalloc_reservation", "reservation_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ReservationAllocation rid={self.reservation_id} code={self.barcode} "
            f"wh={self.warehouse_id} loc={self.location_id} qty={self.quantity}>"
        )
