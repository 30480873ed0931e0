# tests/services/test_item_status.py
from __future__ import annotations

import pytest

from postock.models import LineItemStatus, Notification, OrderStatus, PoLog, TransitionKind
from postock.services.errors import OrderCancelled, UnknownLineItem, ValidationError


@pytest.mark.asyncio
async def test_order_moves_through_partial_to_fulfilled(alloc_engine, make_order, read_po):
    po = await make_order("PO-3", [("PN-1", 5), ("PN-2", 5), ("PN-3", 5)])
    assert po.status == OrderStatus.OPEN

    out = await alloc_engine.update_item_status(po.id, LineItemStatus.DISPATCHED, part_number="PN-1")
    assert out.status == OrderStatus.PARTIALLY_DISPATCHED

    await alloc_engine.update_item_status(po.id, "Dispatched", part_number="PN-2")
    out = await alloc_engine.update_item_status(po.id, "DISPATCHED", line_no=3)
    assert out.status == OrderStatus.FULFILLED

    stored = await read_po(po.id)
    assert stored.status == "Fulfilled"
    assert [ln.status for ln in stored.lines] == ["Dispatched"] * 3


@pytest.mark.asyncio
async def test_backward_transition_reopens_order(alloc_engine, make_order, read_po):
    po = await make_order("PO-1", [("PN-1", 1)])
    await alloc_engine.update_item_status(po.id, "Dispatched", part_number="PN-1")
    assert (await read_po(po.id)).status == "Fulfilled"

    assert alloc_engine.describe_transition("Dispatched", "Available") == TransitionKind.BACKWARD
    out = await alloc_engine.update_item_status(po.id, "Available", part_number="PN-1")
    assert out.status == OrderStatus.OPEN


@pytest.mark.asyncio
async def test_non_dispatched_statuses_keep_order_open(alloc_engine, make_order):
    po = await make_order("PO-1", [("PN-1", 1), ("PN-2", 1)])
    out = await alloc_engine.update_item_status(po.id, "Partially Available", part_number="PN-1")
    assert out.status == OrderStatus.OPEN
    out = await alloc_engine.update_item_status(po.id, "Available", part_number="PN-2")
    assert out.status == OrderStatus.OPEN


@pytest.mark.asyncio
async def test_part_number_updates_every_matching_line(alloc_engine, make_order, read_po):
    po = await make_order("PO-1", [("PN-1", 1), ("PN-2", 1), ("pn-1", 2)])
    await alloc_engine.update_item_status(po.id, "Available", part_number=" PN-1 ")

    stored = await read_po(po.id)
    assert [ln.status for ln in stored.lines] == ["Available", "Not Available", "Available"]


@pytest.mark.asyncio
async def test_line_no_targets_single_line(alloc_engine, make_order, read_po):
    po = await make_order("PO-1", [("PN-1", 1), ("PN-1", 2)])
    await alloc_engine.update_item_status(po.id, "Dispatched", line_no=2)

    stored = await read_po(po.id)
    assert [ln.status for ln in stored.lines] == ["Not Available", "Dispatched"]
    assert stored.status == "Partially Dispatched"


@pytest.mark.asyncio
async def test_status_change_rejections(alloc_engine, make_order, emitter):
    po = await make_order("PO-1", [("PN-1", 1)])
    before = len(emitter.events)

    with pytest.raises(UnknownLineItem):
        await alloc_engine.update_item_status(po.id, "Available", part_number="PN-9")
    with pytest.raises(UnknownLineItem):
        await alloc_engine.update_item_status(po.id, "Available", line_no=7)
    with pytest.raises(ValidationError) as ei:
        await alloc_engine.update_item_status(po.id, "Shipped", part_number="PN-1")
    assert ei.value.code == "unknown_item_status"
    with pytest.raises(ValidationError) as ei:
        await alloc_engine.update_item_status(po.id, "Available")
    assert ei.value.code == "missing_line_target"

    assert len(emitter.events) == before


@pytest.mark.asyncio
async def test_cancel_is_sticky_and_idempotent(alloc_engine, make_order, read_po, emitter):
    po = await make_order("PO-1", [("PN-1", 1)])

    out = await alloc_engine.cancel_order(po.id)
    assert out.status == OrderStatus.CANCELLED
    version = (await read_po(po.id)).version

    await alloc_engine.cancel_order(po.id)
    assert (await read_po(po.id)).version == version

    with pytest.raises(OrderCancelled):
        await alloc_engine.update_item_status(po.id, "Dispatched", part_number="PN-1")
    assert (await read_po(po.id)).status == "Cancelled"
    assert [e.op for e in emitter.events].count("cancel_order") == 2


@pytest.mark.asyncio
async def test_status_update_emits_log_and_notification(alloc_engine, make_order, count_rows):
    po = await make_order("PO-1", [("PN-1", 1)])
    await alloc_engine.update_item_status(po.id, "Available", part_number="PN-1")

    assert await count_rows(PoLog, PoLog.po_id == po.id) == 2
    assert await count_rows(Notification, Notification.po_id == po.id) == 2
