# postock/services/bulk_delete.py
"""
分块批量删除（显式多步序列，块与块之间不回滚）：

- 订单级联：先收集引用（日志 / 通知 id），再依次删除
    1) PO + 行（每块一个事务）
    2) po_logs
    3) notifications
- 清库：stock_movements → stock_positions

任一块失败抛 PartialBatchFailure（stage / chunk_index / 已提交的 id）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from postock.models.notification import Notification
from postock.models.po_log import PoLog
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.models.stock_movement import StockMovement
from postock.models.stock_position import StockPosition
from postock.services.errors import EngineError, PartialBatchFailure
from postock.services.uow import UnitOfWork

log = logging.getLogger("postock.bulk_delete")


def chunked(ids: Sequence[Any], size: int) -> List[List[Any]]:
    if size <= 0:
        raise ValueError("chunk size must be > 0")
    return [list(ids[i : i + size]) for i in range(0, len(ids), size)]


@dataclass
class DeleteReport:
    orders: List[int] = field(default_factory=list)
    logs: int = 0
    notifications: int = 0


@dataclass
class WipeReport:
    positions: int = 0
    movements: int = 0


async def _delete_chunks(
    session_factory: async_sessionmaker[AsyncSession],
    model: Any,
    ids: Sequence[int],
    *,
    chunk_size: int,
    stage: str,
    committed: List[Any],
) -> int:
    deleted = 0
    for idx, chunk in enumerate(chunked(ids, chunk_size)):
        try:
            async with UnitOfWork(session_factory) as uow:
                if model is PurchaseOrder:
                    await uow.session.execute(
                        delete(PurchaseOrderLine).where(PurchaseOrderLine.po_id.in_(chunk))
                    )
                await uow.session.execute(delete(model).where(model.id.in_(chunk)))
        except EngineError as e:
            log.error("bulk delete %s chunk=%d failed: %s", stage, idx, e)
            raise PartialBatchFailure(stage=stage, chunk_index=idx, committed=committed, cause=e) from e
        committed.extend(chunk)
        deleted += len(chunk)
    return deleted


async def delete_orders_cascade(
    session_factory: async_sessionmaker[AsyncSession],
    po_ids: Sequence[int],
    *,
    chunk_size: int,
) -> DeleteReport:
    report = DeleteReport()
    if not po_ids:
        return report

    async with session_factory() as session:
        log_ids = list(
            (await session.execute(select(PoLog.id).where(PoLog.po_id.in_(po_ids)))).scalars().all()
        )
        note_ids = list(
            (
                await session.execute(select(Notification.id).where(Notification.po_id.in_(po_ids)))
            ).scalars().all()
        )

    committed: List[Any] = []
    await _delete_chunks(
        session_factory, PurchaseOrder, list(po_ids), chunk_size=chunk_size, stage="orders", committed=committed
    )
    report.orders = list(po_ids)
    report.logs = await _delete_chunks(
        session_factory, PoLog, log_ids, chunk_size=chunk_size, stage="logs", committed=[]
    )
    report.notifications = await _delete_chunks(
        session_factory, Notification, note_ids, chunk_size=chunk_size, stage="notifications", committed=[]
    )
    log.info(
        "deleted orders=%d logs=%d notifications=%d",
        len(report.orders),
        report.logs,
        report.notifications,
    )
    return report


async def wipe_stock(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    chunk_size: int,
) -> WipeReport:
    """
    删除全部库存头寸与流水。PO 行上的 allocated_qty 不回写，
    清库后到重新入库之前这部分预留与库存不对应。
    """
    async with session_factory() as session:
        mv_ids = list((await session.execute(select(StockMovement.id))).scalars().all())
        pos_ids = list((await session.execute(select(StockPosition.id))).scalars().all())

    report = WipeReport()
    report.movements = await _delete_chunks(
        session_factory, StockMovement, mv_ids, chunk_size=chunk_size, stage="movements", committed=[]
    )
    report.positions = await _delete_chunks(
        session_factory, StockPosition, pos_ids, chunk_size=chunk_size, stage="positions", committed=[]
    )
    log.info("stock wiped positions=%d movements=%d", report.positions, report.movements)
    return report
