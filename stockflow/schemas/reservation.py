from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Optional

from pydantic import Field, model_validator

from stockflow.schemas.common import _Base, _In


class ReservationCreateIn(_In):
    product_id: int
    customer_name: Annotated[str, Field(min_length=1, max_length=128)]
    quantity: Annotated[int, Field(gt=0)]
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _date_range(self) -> "ReservationCreateIn":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReservationActionIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    reason: Optional[str] = None


class AllocationOut(_Base):
    barcode: str
    warehouse_id: int
    location_id: int
    quantity: int


class ReservationOut(_Base):
    id: int
    product_id: int
    customer_name: str
    quantity: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str
    created_by: str
    created_at: datetime
    allocations: List[AllocationOut] = Field(default_factory=list)
