# tests/services/test_order_reports.py
from __future__ import annotations

from datetime import date

import pytest

from postock.services.purchase_order_queries import dispatch_pending_report, missing_oa_report


@pytest.mark.asyncio
async def test_missing_oa_lists_unavailable_lines_without_oa(alloc_engine, make_order, async_session_maker):
    a = await make_order("PO-A", [("PN-1", 1), ("PN-2", 1), ("PN-3", 1)], fulfillment_status="Partially Available")
    b = await make_order("PO-B", [("PN-1", 1)], fulfillment_status="Not Available")
    await make_order("PO-C", [("PN-1", 1)], fulfillment_status="Available")
    await make_order("PO-D", [("PN-1", 1)])

    # 行 1：OA 齐全；行 2：有货；行 3：只有 OA 号
    await alloc_engine.update_line(a.id, 1, {"oa_no": "OA-1", "oa_date": date(2024, 1, 2)})
    await alloc_engine.update_item_status(a.id, "Available", line_no=2)
    await alloc_engine.update_line(a.id, 3, {"oa_no": "OA-3"})

    async with async_session_maker() as s:
        rows = await missing_oa_report(s)

    assert [(r.po.id, [ln.line_no for ln in r.lines]) for r in rows] == [(a.id, [3]), (b.id, [1])]


@pytest.mark.asyncio
async def test_missing_oa_skips_orders_with_complete_oa(alloc_engine, make_order, async_session_maker):
    po = await make_order("PO-A", [("PN-1", 1)], fulfillment_status="Not Available")
    await alloc_engine.update_line(po.id, 1, {"oa_no": "OA-1", "oa_date": date(2024, 1, 2)})

    async with async_session_maker() as s:
        assert await missing_oa_report(s) == []


@pytest.mark.asyncio
async def test_dispatch_pending(make_order, async_session_maker):
    a = await make_order("PO-A", [("PN-1", 1)], fulfillment_status="Available")
    b = await make_order("PO-B", [("PN-1", 1)], fulfillment_status="Available", order_status="Open Orders")
    await make_order("PO-C", [("PN-1", 1)], fulfillment_status="Available", order_status="Invoiced")
    await make_order("PO-D", [("PN-1", 1)], fulfillment_status="Available", order_status="Shipped in System DC")
    await make_order("PO-E", [("PN-1", 1)], fulfillment_status="Partially Available")

    async with async_session_maker() as s:
        rows = await dispatch_pending_report(s)

    assert [po.id for po in rows] == [a.id, b.id]
