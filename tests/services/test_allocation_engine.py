# tests/services/test_allocation_engine.py
from __future__ import annotations

import pytest

from postock.models import MovementType, StockMovement
from postock.services.errors import (
    InsufficientAvailable,
    InvalidQuantity,
    OrderCancelled,
    OverAllocation,
    OverDeallocation,
    UnknownLineItem,
    UnknownOrder,
    UnknownPart,
)


@pytest.mark.asyncio
async def test_pn100_scenario_third_allocation_rejected(alloc_engine, make_order, read_position, read_po, count_rows):
    """
    PN-100 在库 50；A、B 各分 20 后可用 10；
    C 申请 15 被拒，头寸保持 total=50 / allocated=40。
    """
    await alloc_engine.register_part("PN-100", initial_qty=50)
    po_a = await make_order("PO-A", [("PN-100", 20)])
    po_b = await make_order("PO-B", [("PN-100", 25)])
    po_c = await make_order("PO-C", [("PN-100", 15)])

    r1 = await alloc_engine.allocate(po_a.id, "PN-100", 20)
    r2 = await alloc_engine.allocate(po_b.id, "pn-100", 20)
    assert r1.available == 30
    assert r2.available == 10

    with pytest.raises(InsufficientAvailable) as ei:
        await alloc_engine.allocate(po_c.id, "PN-100", 15)
    assert ei.value.context == {"part_number": "PN-100", "requested": 15, "available": 10}

    pos = await read_position("PN-100")
    assert (pos.total_qty, pos.allocated_qty, pos.available) == (50, 40, 10)

    c = await read_po(po_c.id)
    assert c.lines[0].allocated_qty == 0
    assert await count_rows(StockMovement, StockMovement.type == MovementType.ALLOCATION.value) == 2


@pytest.mark.asyncio
async def test_allocation_updates_line_position_and_ledger(alloc_engine, make_order, read_po, async_session_maker):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 6)])

    res = await alloc_engine.allocate(po.id, "PN-1", 4)
    assert (res.line_no, res.line_allocated, res.line_remaining) == (1, 4, 2)

    stored = await read_po(po.id)
    line = stored.lines[0]
    assert line.allocated_qty == 4
    # 分配不改行状态
    assert line.status == "Not Available"
    assert stored.status == "Open"

    async with async_session_maker() as s:
        mv = await s.get(StockMovement, res.movement_id)
    assert (mv.type, mv.quantity, mv.reference_id) == ("ALLOCATION", 4, po.id)


@pytest.mark.asyncio
async def test_over_allocation_against_line_quantity(alloc_engine, make_order, read_position):
    await alloc_engine.register_part("PN-1", initial_qty=100)
    po = await make_order("PO-1", [("PN-1", 5)])
    await alloc_engine.allocate(po.id, "PN-1", 3)

    with pytest.raises(OverAllocation) as ei:
        await alloc_engine.allocate(po.id, "PN-1", 3)
    assert ei.value.context["remaining"] == 2
    assert (await read_position("PN-1")).allocated_qty == 3


@pytest.mark.asyncio
async def test_insufficient_available_is_checked_before_over_allocation(alloc_engine, make_order):
    await alloc_engine.register_part("PN-1", initial_qty=2)
    po = await make_order("PO-1", [("PN-1", 1)])
    with pytest.raises(InsufficientAvailable):
        await alloc_engine.allocate(po.id, "PN-1", 5)


@pytest.mark.asyncio
async def test_line_selection_prefers_line_with_remaining_need(alloc_engine, make_order, read_po):
    await alloc_engine.register_part("PN-1", initial_qty=100)
    po = await make_order("PO-1", [("PN-1", 2), ("PN-2", 1), ("pn-1 ", 5)])

    await alloc_engine.allocate(po.id, "PN-1", 2)
    res = await alloc_engine.allocate(po.id, "PN-1", 3)
    assert res.line_no == 3

    stored = await read_po(po.id)
    assert [ln.allocated_qty for ln in stored.lines] == [2, 0, 3]


@pytest.mark.asyncio
async def test_explicit_line_no(alloc_engine, make_order):
    await alloc_engine.register_part("PN-1", initial_qty=100)
    po = await make_order("PO-1", [("PN-1", 2), ("PN-1", 5)])

    res = await alloc_engine.allocate(po.id, "PN-1", 1, line_no=2)
    assert res.line_no == 2

    with pytest.raises(UnknownLineItem):
        await alloc_engine.allocate(po.id, "PN-1", 1, line_no=9)


@pytest.mark.asyncio
async def test_precondition_errors(alloc_engine, make_order, emitter):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 5), ("PN-UNREG", 5)])
    before = len(emitter.events)

    with pytest.raises(UnknownOrder):
        await alloc_engine.allocate(99999, "PN-1", 1)
    with pytest.raises(UnknownLineItem):
        await alloc_engine.allocate(po.id, "PN-2", 1)
    with pytest.raises(UnknownPart):
        await alloc_engine.allocate(po.id, "PN-UNREG", 1)
    with pytest.raises(InvalidQuantity):
        await alloc_engine.allocate(po.id, "PN-1", 0)

    # 拒绝的操作不产生任何日志 / 通知
    assert len(emitter.events) == before


@pytest.mark.asyncio
async def test_cancelled_order_rejects_allocation(alloc_engine, make_order):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 5)])
    await alloc_engine.cancel_order(po.id)

    with pytest.raises(OrderCancelled):
        await alloc_engine.allocate(po.id, "PN-1", 1)


@pytest.mark.asyncio
async def test_deallocate_releases_reservation(alloc_engine, make_order, read_position, read_po):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 5)])
    await alloc_engine.allocate(po.id, "PN-1", 5)

    res = await alloc_engine.deallocate(po.id, "PN-1", 2)
    assert (res.line_allocated, res.position_allocated, res.available) == (3, 3, 7)

    with pytest.raises(OverDeallocation):
        await alloc_engine.deallocate(po.id, "PN-1", 4)

    pos = await read_position("PN-1")
    assert (pos.total_qty, pos.allocated_qty) == (10, 3)
    assert (await read_po(po.id)).lines[0].allocated_qty == 3


@pytest.mark.asyncio
async def test_deallocate_allowed_after_cancel(alloc_engine, make_order, read_position):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 5)])
    await alloc_engine.allocate(po.id, "PN-1", 5)
    await alloc_engine.cancel_order(po.id)

    await alloc_engine.deallocate(po.id, "PN-1", 5)
    assert (await read_position("PN-1")).allocated_qty == 0


@pytest.mark.asyncio
async def test_allocation_bumps_order_and_position_versions(alloc_engine, make_order, read_po, read_position):
    await alloc_engine.register_part("PN-1", initial_qty=10)
    po = await make_order("PO-1", [("PN-1", 5)])
    assert (await read_po(po.id)).version == 1

    await alloc_engine.allocate(po.id, "PN-1", 1)
    assert (await read_po(po.id)).version == 2
    assert (await read_position("PN-1")).version == 2


@pytest.mark.asyncio
async def test_allocation_candidates(alloc_engine, make_order, async_session_maker):
    from postock.services.purchase_order_queries import allocation_candidates

    await alloc_engine.register_part("PN-1", initial_qty=100)
    a = await make_order("PO-A", [("PN-1", 5)], customer_name="Alpha")
    b = await make_order("PO-B", [("PN-1", 3)], customer_name="Beta")
    c = await make_order("PO-C", [("PN-1", 4)], customer_name="Gamma")
    await make_order("PO-D", [("PN-2", 4)])
    await alloc_engine.allocate(b.id, "PN-1", 3)
    await alloc_engine.cancel_order(c.id)

    async with async_session_maker() as s:
        rows = await allocation_candidates(s, " pn-1")
        filtered = await allocation_candidates(s, "PN-1", search="alp")

    assert [(r.po_id, r.needed_qty) for r in rows] == [(a.id, 5)]
    assert [r.po_number for r in filtered] == ["PO-A"]
