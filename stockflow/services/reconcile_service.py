# stockflow/services/reconcile_service.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.models.enums import SIGN, MovementStatus
from stockflow.models.inventory_item import InventoryItem
from stockflow.models.inventory_movement import InventoryMovement

log = logging.getLogger("stockflow.reconcile")


def signed_quantity():
    """台账有符号数量表达式：in/release 为 +，out/reserve 为 -，其余 0。"""
    return case(
        *[(InventoryMovement.movement_type == mt.value, InventoryMovement.quantity * s) for mt, s in SIGN.items() if s],
        else_=0,
    )


@dataclass(frozen=True)
class BarcodeDiff:
    barcode: Optional[str]
    ledger_qty: int
    balance_qty: int

    @property
    def delta(self) -> int:
        return self.balance_qty - self.ledger_qty


@dataclass
class ReconcileReport:
    product_id: int
    ledger_total: int
    balance_total: int
    diffs: List[BarcodeDiff] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.ledger_total == self.balance_total and not self.diffs


class ReconcileService:
    """
    台账 / 余额对账（只读）：

        Σ approved 台账有符号数量（按条码）  vs  inventory_items.quantity（按条码）

    不做自动修正，差异只报告。
    """

    @staticmethod
    async def ledger_by_barcode(session: AsyncSession, product_id: int) -> Dict[Optional[str], int]:
        rows = await session.execute(
            select(InventoryMovement.barcode, func.coalesce(func.sum(signed_quantity()), 0))
            .where(
                InventoryMovement.product_id == int(product_id),
                InventoryMovement.status == MovementStatus.APPROVED.value,
            )
            .group_by(InventoryMovement.barcode)
        )
        return {code: int(total) for code, total in rows.all()}

    @staticmethod
    async def balance_by_barcode(session: AsyncSession, product_id: int) -> Dict[Optional[str], int]:
        rows = await session.execute(
            select(InventoryItem.barcode, InventoryItem.quantity).where(
                InventoryItem.product_id == int(product_id)
            )
        )
        return {code: int(qty) for code, qty in rows.all()}

    @classmethod
    async def reconcile_product(cls, session: AsyncSession, product_id: int) -> ReconcileReport:
        ledger = await cls.ledger_by_barcode(session, product_id)
        balance = await cls.balance_by_barcode(session, product_id)

        diffs: List[BarcodeDiff] = []
        for code in sorted(set(ledger) | set(balance), key=lambda c: c or ""):
            lq, bq = ledger.get(code, 0), balance.get(code, 0)
            if lq != bq:
                diffs.append(BarcodeDiff(barcode=code, ledger_qty=lq, balance_qty=bq))

        report = ReconcileReport(
            product_id=int(product_id),
            ledger_total=sum(ledger.values()),
            balance_total=sum(balance.values()),
            diffs=diffs,
        )
        if not report.ok:
            log.warning(
                "reconcile product=%s: ledger=%d balance=%d diffs=%d",
                product_id,
                report.ledger_total,
                report.balance_total,
                len(diffs),
            )
        return report
