from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import Field, field_validator, model_validator

from stockflow.models.enums import StockOutPriority
from stockflow.schemas.common import _Base, _In, _none_if_blank


class StockOutCreateIn(_In):
    product_id: int
    quantity: Annotated[int, Field(gt=0)]
    requested_by: Annotated[str, Field(min_length=1, max_length=64)]
    destination: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = None
    priority: StockOutPriority = StockOutPriority.NORMAL
    reservation_id: Optional[int] = None

    blank_to_none = field_validator("destination", "notes", mode="before")(_none_if_blank)


class StockOutApproveIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    approved_quantity: Optional[Annotated[int, Field(gt=0)]] = None


class StockOutRejectIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    reason: Optional[str] = None


class StockOutActorIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]


class PickIn(_In):
    barcode: Annotated[str, Field(min_length=1, max_length=64)]
    quantity: Annotated[int, Field(gt=0)]


class StockOutFulfillIn(_In):
    actor: Annotated[str, Field(min_length=1, max_length=64)]
    picks: List[PickIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_barcodes(self) -> "StockOutFulfillIn":
        codes = [p.barcode.replace("-", "").replace(" ", "").upper() for p in self.picks]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate barcode in picks")
        return self


class StockOutOut(_Base):
    id: int
    product_id: int
    quantity: int
    approved_quantity: Optional[int] = None
    destination: Optional[str] = None
    notes: Optional[str] = None
    priority: str
    status: str
    requested_by: str
    approved_by: Optional[str] = None
    rejected_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    completed_by: Optional[str] = None
    reservation_id: Optional[int] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StockOutLineOut(_Base):
    id: int
    barcode: str
    warehouse_id: int
    location_id: int
    quantity: int
    processed_by: str
    processed_at: datetime


class StockOutDetailOut(StockOutOut):
    lines: List[StockOutLineOut] = Field(default_factory=list)
