# postock/services/allocation_engine.py
"""
AllocationEngine：所有写操作的统一入口。

- 每个操作一个 UnitOfWork（一个 session、一个事务）：成功提交，异常回滚；
- 业务校验全部在第一笔写入之前完成，拒绝时不留下任何部分修改；
- 成功时在同一事务内恰好调用一次 emitter.emit(...)；
- 批量导入 / 批量删除按块提交，块间不回滚，失败抛 PartialBatchFailure。

读操作直接使用各 *_queries / stock_service 的查询函数。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from postock.models.enums import LineItemStatus, TransitionKind
from postock.models.purchase_order import PurchaseOrder
from postock.models.stock_position import StockPosition
from postock.obs.metrics import engine_ops_total, ledger_mismatch_total
from postock.services import (
    allocation_service,
    bulk_delete,
    order_status,
    purchase_order_create,
    purchase_order_service,
    stock_service,
)
from postock.services.activity_writer import (
    ActivityEmitter,
    ActivityEvent,
    DbActivityEmitter,
    mark_all_read,
)
from postock.services.allocation_service import AllocationResult
from postock.services.csv_export import parse_stock_csv
from postock.services.errors import (
    EngineError,
    LedgerInconsistency,
    MalformedImportRow,
    PartialBatchFailure,
    UnknownOrder,
    ValidationError,
)
from postock.services.ledger_replay_service import LedgerReplayService
from postock.services.po_import import ParsedImport, parse_orders_csv
from postock.services.purchase_order_queries import get_po_with_lines, po_ids_by_branch
from postock.services.stock_service import BulkUploadResult
from postock.services.uow import UnitOfWork

log = logging.getLogger("postock.engine")

T = TypeVar("T")


@dataclass
class ImportReport:
    created: List[Dict[str, Any]] = field(default_factory=list)
    skipped: List[MalformedImportRow] = field(default_factory=list)


class AllocationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        emitter: Optional[ActivityEmitter] = None,
        delete_chunk_size: int = 400,
        import_chunk_size: int = 150,
    ) -> None:
        self._session_factory = session_factory
        self._emitter: ActivityEmitter = emitter or DbActivityEmitter()
        self.delete_chunk_size = int(delete_chunk_size)
        self.import_chunk_size = int(import_chunk_size)

    # ------------------------------------------------------------------
    # 基础设施
    # ------------------------------------------------------------------

    @staticmethod
    def _record(op: str, exc: Optional[BaseException]) -> None:
        if exc is None:
            engine_ops_total.labels(op, "ok").inc()
        elif isinstance(exc, ValidationError):
            engine_ops_total.labels(op, "rejected").inc()
            log.warning("%s rejected: %s", op, exc)
        else:
            engine_ops_total.labels(op, "failed").inc()
            log.error("%s failed: %s", op, exc)

    async def _run(self, op: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        try:
            async with UnitOfWork(self._session_factory) as uow:
                result = await fn(uow.session)
        except EngineError as e:
            self._record(op, e)
            raise
        self._record(op, None)
        return result

    # ------------------------------------------------------------------
    # 库存
    # ------------------------------------------------------------------

    async def register_part(
        self,
        part_number: str,
        *,
        description: Optional[str] = None,
        initial_qty: int = 0,
    ) -> StockPosition:
        async def _op(session: AsyncSession) -> StockPosition:
            pos = await stock_service.register_part(
                session, part_number=part_number, description=description, initial_qty=initial_qty
            )
            await self._emitter.emit(
                session,
                ActivityEvent.for_part(
                    "register_part", pos.part_number, f"Registered part {pos.part_number} with {pos.total_qty} unit(s)"
                ),
            )
            return pos

        pos = await self._run("register_part", _op)
        log.info("register_part part=%s total=%s", pos.part_number, pos.total_qty)
        return pos

    async def inward(self, part_number: str, qty: int, *, remark: Optional[str] = None) -> StockPosition:
        async def _op(session: AsyncSession) -> StockPosition:
            pos = await stock_service.inward(session, part_number=part_number, qty=qty, remark=remark)
            await self._emitter.emit(
                session,
                ActivityEvent.for_part("inward", pos.part_number, f"Inward {qty} of {pos.part_number}"),
            )
            return pos

        pos = await self._run("inward", _op)
        log.info("inward part=%s qty=%s total=%s", pos.part_number, qty, pos.total_qty)
        return pos

    async def walking_sale(self, part_number: str, qty: int, *, remark: Optional[str] = None) -> StockPosition:
        async def _op(session: AsyncSession) -> StockPosition:
            pos = await stock_service.walking_sale(session, part_number=part_number, qty=qty, remark=remark)
            await self._emitter.emit(
                session,
                ActivityEvent.for_part("walking_sale", pos.part_number, f"Walking sale {qty} of {pos.part_number}"),
            )
            return pos

        pos = await self._run("walking_sale", _op)
        log.info("walking_sale part=%s qty=%s total=%s", pos.part_number, qty, pos.total_qty)
        return pos

    async def bulk_upload(self, rows: Sequence[Mapping[str, Any]]) -> BulkUploadResult:
        """合法行一个事务写入；非法行跳过并在结果中返回。"""
        valid, skipped = stock_service.normalize_upload_rows(rows, first_row_no=1)

        async def _op(session: AsyncSession) -> BulkUploadResult:
            res = await stock_service.bulk_upload(session, valid)
            await self._emitter.emit(
                session,
                ActivityEvent.for_part(
                    "bulk_upload",
                    None,
                    f"Bulk stock upload: {len(res.registered)} registered, "
                    f"{len(res.replenished)} replenished, {len(skipped)} skipped",
                ),
            )
            return res

        if valid:
            result = await self._run("bulk_upload", _op)
        else:
            result = BulkUploadResult()
        result.skipped = skipped
        log.info("bulk_upload applied=%d skipped=%d", result.applied, len(skipped))
        return result

    async def bulk_upload_csv(self, text: str) -> BulkUploadResult:
        return await self.bulk_upload(parse_stock_csv(text))

    async def wipe_all(self) -> bulk_delete.WipeReport:
        try:
            report = await bulk_delete.wipe_stock(self._session_factory, chunk_size=self.delete_chunk_size)
        except PartialBatchFailure as e:
            self._record("wipe_all", e)
            raise

        async def _op(session: AsyncSession) -> None:
            await self._emitter.emit(
                session,
                ActivityEvent.for_part(
                    "wipe_all",
                    None,
                    f"Stock wiped: {report.positions} position(s), {report.movements} movement(s)",
                ),
            )

        await self._run("wipe_all", _op)
        return report

    # ------------------------------------------------------------------
    # 分配
    # ------------------------------------------------------------------

    async def allocate(
        self,
        po_id: int,
        part_number: str,
        qty: int,
        *,
        line_no: Optional[int] = None,
    ) -> AllocationResult:
        async def _op(session: AsyncSession) -> AllocationResult:
            res = await allocation_service.allocate(
                session, po_id=po_id, part_number=part_number, qty=qty, line_no=line_no
            )
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "allocate",
                    res.po_id,
                    f"Allocated {res.qty} of {res.part_number} to line {res.line_no}",
                    message=f"PO #{res.po_number}: {res.qty} x {res.part_number} allocated from stock",
                ),
            )
            return res

        res = await self._run("allocate", _op)
        log.info(
            "allocate po=%s line=%s part=%s qty=%s available=%s",
            res.po_id, res.line_no, res.part_number, res.qty, res.available,
        )
        return res

    async def deallocate(
        self,
        po_id: int,
        part_number: str,
        qty: int,
        *,
        line_no: Optional[int] = None,
    ) -> AllocationResult:
        async def _op(session: AsyncSession) -> AllocationResult:
            res = await allocation_service.deallocate(
                session, po_id=po_id, part_number=part_number, qty=qty, line_no=line_no
            )
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "deallocate",
                    res.po_id,
                    f"Released {res.qty} of {res.part_number} from line {res.line_no}",
                    message=f"PO #{res.po_number}: {res.qty} x {res.part_number} returned to stock",
                ),
            )
            return res

        res = await self._run("deallocate", _op)
        log.info("deallocate po=%s line=%s part=%s qty=%s", res.po_id, res.line_no, res.part_number, res.qty)
        return res

    # ------------------------------------------------------------------
    # 订单
    # ------------------------------------------------------------------

    @staticmethod
    def describe_transition(old: str, new: str) -> TransitionKind:
        return order_status.describe_transition(old, new)

    async def create_order(
        self,
        header: Mapping[str, Any],
        lines: Sequence[Mapping[str, Any]],
    ) -> PurchaseOrder:
        async def _op(session: AsyncSession) -> PurchaseOrder:
            po = await purchase_order_create.create_po(session, header=header, lines=lines)
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "create_order",
                    po.id,
                    f"PO #{po.po_number} created with {len(po.lines)} item(s)",
                    message=f"New PO #{po.po_number} for {po.customer_name or 'unknown customer'}",
                ),
            )
            return po

        po = await self._run("create_order", _op)
        log.info("create_order po=%s number=%s lines=%d", po.id, po.po_number, len(po.lines))
        return po

    async def update_item_status(
        self,
        po_id: int,
        status: LineItemStatus | str,
        *,
        line_no: Optional[int] = None,
        part_number: Optional[str] = None,
    ) -> PurchaseOrder:
        async def _op(session: AsyncSession) -> PurchaseOrder:
            po, targets = await order_status.update_item_status(
                session, po_id=po_id, status=status, line_no=line_no, part_number=part_number
            )
            parts = ", ".join(sorted({ln.part_number for ln in targets}))
            new_status = targets[0].status
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "update_item_status",
                    po.id,
                    f"Item {parts} set to {new_status} ({len(targets)} line(s)); order is {po.status}",
                    message=f"PO #{po.po_number}: {parts} is now {new_status}",
                ),
            )
            return po

        po = await self._run("update_item_status", _op)
        log.info("update_item_status po=%s status=%s", po.id, po.status)
        return po

    async def cancel_order(self, po_id: int) -> PurchaseOrder:
        async def _op(session: AsyncSession) -> PurchaseOrder:
            po = await order_status.cancel_order(session, po_id=po_id)
            await self._emitter.emit(
                session,
                ActivityEvent.for_order("cancel_order", po.id, f"PO #{po.po_number} cancelled"),
            )
            return po

        po = await self._run("cancel_order", _op)
        log.info("cancel_order po=%s", po.id)
        return po

    async def update_order_header(self, po_id: int, fields: Mapping[str, Any]) -> PurchaseOrder:
        async def _op(session: AsyncSession) -> PurchaseOrder:
            po, changed = await purchase_order_service.update_order_header(session, po_id=po_id, fields=fields)
            summary = ", ".join(changed) if changed else "no changes"
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "update_order_header",
                    po.id,
                    f"PO #{po.po_number} details updated: {summary}",
                ),
            )
            return po

        po = await self._run("update_order_header", _op)
        log.info("update_order_header po=%s", po.id)
        return po

    async def update_line(self, po_id: int, line_no: int, fields: Mapping[str, Any]) -> PurchaseOrder:
        async def _op(session: AsyncSession) -> PurchaseOrder:
            po, line, changed = await purchase_order_service.update_line(
                session, po_id=po_id, line_no=line_no, fields=fields
            )
            summary = ", ".join(changed) if changed else "no changes"
            await self._emitter.emit(
                session,
                ActivityEvent.for_order(
                    "update_line",
                    po.id,
                    f"PO #{po.po_number} line {line.line_no} ({line.part_number}) updated: {summary}",
                ),
            )
            return po

        po = await self._run("update_line", _op)
        log.info("update_line po=%s line=%s", po.id, line_no)
        return po

    async def delete_order(self, po_id: int) -> bulk_delete.DeleteReport:
        async with self._session_factory() as session:
            po = await get_po_with_lines(session, po_id)
        if po is None:
            err = UnknownOrder(po_id)
            self._record("delete_order", err)
            raise err
        return await self._delete_cascade("delete_order", [po.id], f"PO #{po.po_number} deleted")

    async def delete_orders_by_branch(
        self,
        main_branch: str,
        sub_branch: Optional[str] = None,
    ) -> bulk_delete.DeleteReport:
        if not (main_branch or "").strip():
            raise ValidationError("main_branch must not be blank", code="invalid_branch")
        async with self._session_factory() as session:
            ids = await po_ids_by_branch(session, main_branch=main_branch, sub_branch=sub_branch)
        label = f"{main_branch}/{sub_branch}" if sub_branch else main_branch
        return await self._delete_cascade(
            "delete_orders_by_branch", ids, f"Deleted {len(ids)} PO(s) of branch {label}"
        )

    async def _delete_cascade(self, op: str, ids: List[int], action: str) -> bulk_delete.DeleteReport:
        try:
            report = await bulk_delete.delete_orders_cascade(
                self._session_factory, ids, chunk_size=self.delete_chunk_size
            )
        except PartialBatchFailure as e:
            self._record(op, e)
            raise

        # 订单本身已删除，日志不挂 po_id，避免被后续级联清理
        async def _op(session: AsyncSession) -> None:
            await self._emitter.emit(session, ActivityEvent.for_part(op, None, action))

        await self._run(op, _op)
        return report

    async def import_orders(self, source: str | ParsedImport) -> ImportReport:
        parsed = parse_orders_csv(source) if isinstance(source, str) else source
        report = ImportReport(skipped=list(parsed.skipped))

        for idx, chunk in enumerate(bulk_delete.chunked(parsed.orders, self.import_chunk_size)):

            async def _op(session: AsyncSession) -> List[PurchaseOrder]:
                created: List[PurchaseOrder] = []
                for order in chunk:
                    po = await purchase_order_create.create_po(
                        session, header=order.header, lines=order.lines, keep_item_status=True
                    )
                    await self._emitter.emit(
                        session,
                        ActivityEvent.for_order(
                            "import_orders",
                            po.id,
                            f"PO #{po.po_number} imported with {len(po.lines)} item(s)",
                            message=f"Imported PO #{po.po_number} for {po.customer_name or 'unknown customer'}",
                        ),
                    )
                    created.append(po)
                return created

            try:
                created = await self._run("import_orders", _op)
            except EngineError as e:
                raise PartialBatchFailure(
                    stage="import",
                    chunk_index=idx,
                    committed=[c["po_id"] for c in report.created],
                    cause=e,
                ) from e
            report.created.extend(
                {"po_id": po.id, "po_number": po.po_number, "lines": len(po.lines), "status": po.status}
                for po in created
            )

        log.info("import_orders created=%d skipped=%d", len(report.created), len(report.skipped))
        return report

    # ------------------------------------------------------------------
    # 通知 / 对账
    # ------------------------------------------------------------------

    async def mark_notifications_read(self) -> int:
        return await self._run("mark_notifications_read", mark_all_read)

    async def reconcile(self) -> List[Dict[str, Any]]:
        async with self._session_factory() as session:
            mismatches = await LedgerReplayService.reconcile(session)
        if mismatches:
            ledger_mismatch_total.inc(len(mismatches))
            log.warning("ledger reconcile found %d mismatch(es)", len(mismatches))
        return mismatches

    async def assert_consistent(self) -> None:
        mismatches = await self.reconcile()
        if mismatches:
            raise LedgerInconsistency(mismatches)
