from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockflow.db.base import Base

if TYPE_CHECKING:
    from .warehouse import Warehouse


class Location(Base):
    """库位：楼层 + 分区，恒属于唯一一个仓库。"""

    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    warehouse_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("warehouses.id", ondelete="CASCADE"), nullable=False
    )

    floor: Mapped[str] = mapped_column(String(32), nullable=False)
    zone: Mapped[str] = mapped_column(String(32), nullable=False)

    warehouse: Mapped["Warehouse"] = relationship("Warehouse", back_populates="locations", lazy="selectin")

    __table_args__ = (Index("ix_locations_warehouse_id", "warehouse_id"),)

    @property
    def code(self) -> str:
        return f"F{self.floor}-{self.zone}"

    def __repr__(self) -> str:
        return f"<Location id={self.id} wh={self.warehouse_id} floor={self.floor} zone={self.zone}>"
