# stockflow/models/warehouse.py
from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stockflow.db.base import Base

if TYPE_CHECKING:
    from .location import Location


class Warehouse(Base):
    """
    仓库主档：
    - id / name / location（物理地址描述）
    - locations: 一对多 -> Location
    """

    __tablename__ = "warehouses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    locations: Mapped[List["Location"]] = relationship(
        "Location",
        back_populates="warehouse",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r}>"
