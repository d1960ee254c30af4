# stockflow/services/batch_processor.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stockflow.core.tx import atomic, tx_commit
from stockflow.models.batch import Batch
from stockflow.models.batch_item import BatchItem
from stockflow.models.enums import (
    BatchStatus,
    BoxStatus,
    MovementType,
    ReferenceTable,
    StockInDetailStatus,
    StockInStatus,
)
from stockflow.models.location import Location
from stockflow.models.product import Product
from stockflow.models.stock_in import StockInDetail, StockInRequest
from stockflow.obs.metrics import box_errors_total, boxes_created_total
from stockflow.services.audit_writer import AuditEventWriter
from stockflow.services.barcode_generator import BarcodeGenerator
from stockflow.services.inventory_errors import (
    DuplicateBarcode,
    InventoryError,
    NotFound,
    PersistenceError,
    ValidationError,
)
from stockflow.services.inventory_ledger_service import InventoryLedgerService, MovementChange
from stockflow.services.request_state import STOCK_IN, assert_transition
from stockflow.utils.time import utcnow

log = logging.getLogger("stockflow.batch")

MAX_BOXES_PER_REQUEST = 9999


@dataclass(frozen=True)
class BatchLine:
    """一条入库行：同库位 / 同规格的 box_count 箱，每箱 quantity_per_box。"""

    warehouse_id: int
    location_id: int
    box_count: int
    quantity_per_box: int
    color: Optional[str] = None
    size: Optional[str] = None

    def validate(self) -> None:
        if int(self.box_count) <= 0:
            raise ValidationError(f"box_count must be positive, got {self.box_count}")
        if int(self.quantity_per_box) <= 0:
            raise ValidationError(f"quantity_per_box must be positive, got {self.quantity_per_box}")


@dataclass(frozen=True)
class BoxError:
    line_no: int
    box_sequence: int
    code: str
    message: str


@dataclass
class BatchResult:
    batch: Batch
    boxes: List[BatchItem] = field(default_factory=list)
    errors: List[BoxError] = field(default_factory=list)
    request: Optional[StockInRequest] = None

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class StockInResult:
    request: StockInRequest
    batches: List[BatchResult] = field(default_factory=list)

    @property
    def boxes(self) -> List[BatchItem]:
        return [b for r in self.batches for b in r.boxes]

    @property
    def errors(self) -> List[BoxError]:
        return [e for r in self.batches for e in r.errors]


def final_request_status(ok_boxes: int, total_boxes: int) -> StockInStatus:
    if total_boxes > 0 and ok_boxes == total_boxes:
        return StockInStatus.COMPLETED
    if ok_boxes > 0:
        return StockInStatus.PARTIAL
    return StockInStatus.FAILED


class BatchProcessor:
    """
    批次入库处理器（逐箱尽力而为）：

      1) 建 / 复用 pending 的入库申请 → processing
      2) 每条入库行建一个 Batch（预置 箱数 × 每箱数量）
      3) 逐箱：生成条码 → batch_items → 台账 in + 余额 → stock_in_details
         每箱独立事务并立即提交，后一箱的碰撞探测能看到前一箱
      4) 某箱失败：只回滚该箱，记 failed 明细进错误列表，继续下一箱
      5) 收尾：按实际落库的箱复核 Batch 合计；申请置 completed / partial / failed

    调用方传入的 session 中未提交的写会在第 1 步随之提交。
    """

    def __init__(
        self,
        *,
        barcode_generator: Optional[BarcodeGenerator] = None,
        ledger: Optional[InventoryLedgerService] = None,
    ) -> None:
        self.barcodes = barcode_generator or BarcodeGenerator()
        self.ledger = ledger or InventoryLedgerService()

    async def process_batch(
        self,
        session: AsyncSession,
        *,
        product_id: int,
        warehouse_id: int,
        location_id: int,
        box_count: int,
        quantity_per_box: int,
        actor: str,
        color: Optional[str] = None,
        size: Optional[str] = None,
        stock_in_id: Optional[int] = None,
    ) -> BatchResult:
        line = BatchLine(
            warehouse_id=warehouse_id,
            location_id=location_id,
            box_count=box_count,
            quantity_per_box=quantity_per_box,
            color=color,
            size=size,
        )
        result = await self._process(
            session, product_id=product_id, lines=[line], actor=actor, stock_in_id=stock_in_id
        )
        batch_result = result.batches[0]
        batch_result.request = result.request
        return batch_result

    async def process_stock_in(
        self,
        session: AsyncSession,
        stock_in_id: int,
        *,
        lines: Sequence[BatchLine],
        actor: str,
    ) -> StockInResult:
        req = await session.get(StockInRequest, int(stock_in_id))
        if req is None:
            raise NotFound(f"stock-in request not found: {stock_in_id}")
        result = await self._process(
            session, product_id=req.product_id, lines=list(lines), actor=actor, stock_in_id=req.id
        )
        for r in result.batches:
            r.request = result.request
        return result

    # ------------------------------------------------------------------

    async def _validate(
        self, session: AsyncSession, *, product_id: int, lines: List[BatchLine], actor: str
    ) -> Product:
        if not actor:
            raise ValidationError("actor is required")
        if not lines:
            raise ValidationError("at least one batch line is required")
        for line in lines:
            line.validate()
        if sum(int(x.box_count) for x in lines) > MAX_BOXES_PER_REQUEST:
            raise ValidationError(f"too many boxes in one request (max {MAX_BOXES_PER_REQUEST})")

        product = await session.get(Product, int(product_id))
        if product is None:
            raise NotFound(f"product not found: {product_id}")

        for line in lines:
            loc = await session.get(Location, int(line.location_id))
            if loc is None:
                raise NotFound(f"location not found: {line.location_id}")
            if int(loc.warehouse_id) != int(line.warehouse_id):
                raise ValidationError(
                    f"location {line.location_id} does not belong to warehouse {line.warehouse_id}"
                )
        return product

    async def _open_request(
        self, session: AsyncSession, *, product_id: int, lines: List[BatchLine], actor: str, stock_in_id: Optional[int]
    ) -> int:
        async with tx_commit(session):
            if stock_in_id is None:
                req = StockInRequest(
                    product_id=int(product_id),
                    boxes=sum(int(x.box_count) for x in lines),
                    source="batch",
                    status=StockInStatus.PENDING.value,
                    submitted_by=actor,
                )
                session.add(req)
                await session.flush()
            else:
                req = (
                    await session.execute(
                        select(StockInRequest)
                        .where(StockInRequest.id == int(stock_in_id))
                        .with_for_update()
                        .execution_options(populate_existing=True)
                    )
                ).scalars().first()
                if req is None:
                    raise NotFound(f"stock-in request not found: {stock_in_id}")
                if int(req.product_id) != int(product_id):
                    raise ValidationError(
                        f"stock-in request {stock_in_id} is for product {req.product_id}, not {product_id}"
                    )

            assert_transition(STOCK_IN, req.status, StockInStatus.PROCESSING)
            req.status = StockInStatus.PROCESSING.value
            req.processed_by = actor
            req.processing_started_at = utcnow()
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_IN",
                action="PROCESSING_STARTED",
                ref=f"stock_in:{req.id}",
                actor=actor,
                meta={"lines": len(lines)},
            )
            return int(req.id)

    async def _process(
        self,
        session: AsyncSession,
        *,
        product_id: int,
        lines: List[BatchLine],
        actor: str,
        stock_in_id: Optional[int],
    ) -> StockInResult:
        product = await self._validate(session, product_id=product_id, lines=lines, actor=actor)
        category, sku = product.category, product.sku

        request_id = await self._open_request(
            session, product_id=product_id, lines=lines, actor=actor, stock_in_id=stock_in_id
        )

        seq = 0
        ok_total = 0
        batch_ids: List[int] = []
        errors_by_batch: List[List[BoxError]] = []

        for line_no, line in enumerate(lines, start=1):
            async with tx_commit(session):
                batch = Batch(
                    stock_in_id=request_id,
                    product_id=int(product_id),
                    warehouse_id=int(line.warehouse_id),
                    location_id=int(line.location_id),
                    total_boxes=int(line.box_count),
                    total_quantity=int(line.box_count) * int(line.quantity_per_box),
                    status=BatchStatus.PROCESSING.value,
                    created_by=actor,
                )
                session.add(batch)
                await session.flush()
                batch.batch_number = f"B{batch.id:06d}"
                batch_id = int(batch.id)

            line_errors: List[BoxError] = []
            ok_boxes = 0
            for _ in range(int(line.box_count)):
                seq += 1
                err = await self._process_box(
                    session,
                    request_id=request_id,
                    batch_id=batch_id,
                    product_id=int(product_id),
                    category=category,
                    sku=sku,
                    line=line,
                    line_no=line_no,
                    seq=seq,
                    actor=actor,
                )
                if err is None:
                    ok_boxes += 1
                else:
                    line_errors.append(err)

            async with tx_commit(session):
                await session.execute(
                    update(Batch)
                    .where(Batch.id == batch_id)
                    .values(
                        total_boxes=ok_boxes,
                        total_quantity=ok_boxes * int(line.quantity_per_box),
                        status=(BatchStatus.COMPLETED if ok_boxes else BatchStatus.FAILED).value,
                        completed_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )

            ok_total += ok_boxes
            batch_ids.append(batch_id)
            errors_by_batch.append(line_errors)

        status = final_request_status(ok_total, seq)
        async with tx_commit(session):
            await session.execute(
                update(StockInRequest)
                .where(StockInRequest.id == request_id)
                .values(status=status.value, processing_completed_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await AuditEventWriter.write(
                session,
                category="STOCK_IN",
                action=f"PROCESSING_{status.value.upper()}",
                ref=f"stock_in:{request_id}",
                actor=actor,
                meta={"boxes_ok": ok_total, "boxes_failed": seq - ok_total, "batches": batch_ids},
            )

        log.info(
            "stock_in %s processed: status=%s boxes_ok=%d boxes_failed=%d",
            request_id,
            status.value,
            ok_total,
            seq - ok_total,
        )
        return await self._reload(session, request_id, batch_ids, errors_by_batch)

    async def _process_box(
        self,
        session: AsyncSession,
        *,
        request_id: int,
        batch_id: int,
        product_id: int,
        category: Optional[str],
        sku: Optional[str],
        line: BatchLine,
        line_no: int,
        seq: int,
        actor: str,
    ) -> Optional[BoxError]:
        qty = int(line.quantity_per_box)
        try:
            async with atomic(session):
                barcode = await self.barcodes.generate(session, category=category, sku=sku, box_sequence=seq)

                session.add(
                    BatchItem(
                        batch_id=batch_id,
                        barcode=barcode,
                        quantity=qty,
                        color=line.color,
                        size=line.size,
                        warehouse_id=int(line.warehouse_id),
                        location_id=int(line.location_id),
                        status=BoxStatus.AVAILABLE.value,
                    )
                )
                try:
                    await session.flush()
                except IntegrityError as e:
                    raise DuplicateBarcode(barcode) from e

                await self.ledger.record_stock_in(
                    session,
                    MovementChange(
                        product_id=product_id,
                        warehouse_id=int(line.warehouse_id),
                        location_id=int(line.location_id),
                        barcode=barcode,
                        quantity=qty,
                        actor=actor,
                        reference_table=ReferenceTable.STOCK_IN,
                        reference_id=request_id,
                        movement_type=MovementType.IN,
                        batch_id=batch_id,
                        color=line.color,
                        size=line.size,
                        notes=f"batch B{batch_id:06d} box {seq}",
                    ),
                )

                session.add(
                    StockInDetail(
                        stock_in_id=request_id,
                        batch_id=batch_id,
                        product_id=product_id,
                        warehouse_id=int(line.warehouse_id),
                        location_id=int(line.location_id),
                        barcode=barcode,
                        quantity=qty,
                        color=line.color,
                        size=line.size,
                        processing_order=seq,
                        status=StockInDetailStatus.COMPLETED.value,
                    )
                )
                await session.flush()

                await AuditEventWriter.write(
                    session,
                    category="STOCK_IN",
                    action="BOX_CREATED",
                    ref=f"batch:{batch_id}",
                    barcode=barcode,
                    actor=actor,
                    meta={"stock_in_id": request_id, "box_sequence": seq, "quantity": qty},
                )
            await session.commit()
        except InventoryError as e:
            return await self._record_failure(
                session, e, request_id=request_id, batch_id=batch_id, product_id=product_id,
                line=line, line_no=line_no, seq=seq, actor=actor,
            )
        except SQLAlchemyError as e:
            log.exception("box %d of stock_in %s hit a storage error", seq, request_id)
            return await self._record_failure(
                session, PersistenceError(str(e)), request_id=request_id, batch_id=batch_id,
                product_id=product_id, line=line, line_no=line_no, seq=seq, actor=actor,
            )

        boxes_created_total.inc()
        return None

    async def _record_failure(
        self,
        session: AsyncSession,
        error: InventoryError,
        *,
        request_id: int,
        batch_id: int,
        product_id: int,
        line: BatchLine,
        line_no: int,
        seq: int,
        actor: str,
    ) -> BoxError:
        await session.rollback()
        box_errors_total.labels(code=error.code).inc()
        log.warning("box %d of stock_in %s failed: %s %s", seq, request_id, error.code, error.message)

        async with tx_commit(session):
            session.add(
                StockInDetail(
                    stock_in_id=request_id,
                    batch_id=batch_id,
                    product_id=product_id,
                    warehouse_id=int(line.warehouse_id),
                    location_id=int(line.location_id),
                    barcode=None,
                    quantity=int(line.quantity_per_box),
                    color=line.color,
                    size=line.size,
                    processing_order=seq,
                    status=StockInDetailStatus.FAILED.value,
                    error_code=error.code,
                    error_message=error.message,
                )
            )
            await session.flush()
            await AuditEventWriter.write(
                session,
                category="STOCK_IN",
                action="BOX_FAILED",
                ref=f"batch:{batch_id}",
                actor=actor,
                meta={"stock_in_id": request_id, "box_sequence": seq, "error_code": error.code},
            )
        return BoxError(line_no=line_no, box_sequence=seq, code=error.code, message=error.message)

    async def _reload(
        self,
        session: AsyncSession,
        request_id: int,
        batch_ids: List[int],
        errors_by_batch: List[List[BoxError]],
    ) -> StockInResult:
        request = await session.get(StockInRequest, request_id, populate_existing=True)
        assert request is not None

        out = StockInResult(request=request)
        for batch_id, errs in zip(batch_ids, errors_by_batch):
            batch = await session.get(Batch, batch_id, populate_existing=True)
            boxes = (
                await session.execute(
                    select(BatchItem)
                    .where(BatchItem.batch_id == batch_id)
                    .order_by(BatchItem.id)
                    .execution_options(populate_existing=True)
                )
            ).scalars().all()
            out.batches.append(BatchResult(batch=batch, boxes=list(boxes), errors=errs, request=request))
        # 只读回查，释放连接
        await session.commit()
        return out
