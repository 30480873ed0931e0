# tests/services/test_bulk_delete.py
from __future__ import annotations

import pytest

from postock.models import Notification, PoLog, PurchaseOrder, PurchaseOrderLine, StockMovement, StockPosition
from postock.services.bulk_delete import chunked
from postock.services.errors import UnknownOrder, ValidationError


def test_chunked_splits_sequence():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []
    with pytest.raises(ValueError):
        chunked([1], 0)


@pytest.mark.asyncio
async def test_delete_order_removes_lines_logs_and_notifications(alloc_engine, make_order, count_rows, emitter):
    keep = await make_order("PO-KEEP", [("PN-1", 1)])
    gone = await make_order("PO-GONE", [("PN-1", 1), ("PN-2", 2)])
    await alloc_engine.update_item_status(gone.id, "Available", part_number="PN-2")

    report = await alloc_engine.delete_order(gone.id)
    assert report.orders == [gone.id]
    assert report.logs == 2
    assert report.notifications == 2

    assert await count_rows(PurchaseOrder) == 1
    assert await count_rows(PurchaseOrderLine, PurchaseOrderLine.po_id == gone.id) == 0
    assert await count_rows(PoLog, PoLog.po_id == gone.id) == 0
    assert await count_rows(Notification, Notification.po_id == gone.id) == 0
    # 其余订单的活动不受影响；删除本身记一条不挂订单的日志
    assert await count_rows(PoLog, PoLog.po_id == keep.id) == 1
    assert await count_rows(PoLog, PoLog.po_id.is_(None)) == 1
    assert emitter.events[-1].op == "delete_order"


@pytest.mark.asyncio
async def test_delete_unknown_order(alloc_engine):
    with pytest.raises(UnknownOrder):
        await alloc_engine.delete_order(4242)


@pytest.mark.asyncio
async def test_delete_by_branch_spans_several_chunks(alloc_engine, make_order, count_rows):
    for i in range(5):
        await make_order(f"PO-N{i}", [("PN-1", 1)], main_branch="North", sub_branch="A" if i % 2 else "B")
    await make_order("PO-S", [("PN-1", 1)], main_branch="South")

    report = await alloc_engine.delete_orders_by_branch("North", "A")
    assert len(report.orders) == 2
    assert await count_rows(PurchaseOrder) == 4

    report = await alloc_engine.delete_orders_by_branch("North")
    assert len(report.orders) == 3
    assert report.logs == 3
    assert await count_rows(PurchaseOrder) == 1
    assert await count_rows(PurchaseOrderLine) == 1


@pytest.mark.asyncio
async def test_delete_by_blank_branch_is_rejected(alloc_engine):
    with pytest.raises(ValidationError):
        await alloc_engine.delete_orders_by_branch("  ")


@pytest.mark.asyncio
async def test_wipe_all_removes_positions_and_movements(alloc_engine, make_order, read_po, count_rows):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    await alloc_engine.register_part("PN-2", initial_qty=3)
    po = await make_order("PO-1", [("PN-1", 5)])
    await alloc_engine.allocate(po.id, "PN-1", 4)

    report = await alloc_engine.wipe_all()
    assert report.positions == 2
    assert report.movements == 3

    assert await count_rows(StockPosition) == 0
    assert await count_rows(StockMovement) == 0
    # 订单行上的预留量不回写
    assert (await read_po(po.id)).lines[0].allocated_qty == 4
    assert await alloc_engine.reconcile() == []
