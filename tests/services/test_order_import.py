# tests/services/test_order_import.py
from __future__ import annotations

import pytest

from postock.models import Notification, PoLog, PurchaseOrder, PurchaseOrderLine, StockMovement
from postock.services.errors import PartialBatchFailure
from postock.services.po_import import ImportedOrder, ParsedImport

HEADER = "PO.NO,Account Name,Main -Branch,Item: Item Name,Quantity,Unit Price,Item Status\n"


@pytest.mark.asyncio
async def test_rows_of_same_po_become_one_order(alloc_engine, read_po, count_rows):
    text = HEADER + (
        "PO-9,Acme Motors,Bengaluru,PN-1,5,100,\n"
        "PO-9,Acme Motors,Bengaluru,PN-2,3,50,Dispatched\n"
        "PO-9,Acme Motors,Bengaluru,PN-3,1,10,\n"
    )
    report = await alloc_engine.import_orders(text)

    assert len(report.created) == 1
    created = report.created[0]
    assert created["po_number"] == "PO-9"
    assert created["lines"] == 3
    assert created["status"] == "Partially Dispatched"

    po = await read_po(created["po_id"])
    assert po.customer_name == "Acme Motors"
    assert [ln.line_no for ln in po.lines] == [1, 2, 3]
    assert [ln.allocated_qty for ln in po.lines] == [0, 0, 0]

    # 导入不触碰库存
    assert await count_rows(StockMovement) == 0
    assert await count_rows(PoLog, PoLog.po_id == po.id) == 1
    assert await count_rows(Notification, Notification.po_id == po.id) == 1


@pytest.mark.asyncio
async def test_import_in_chunks_emits_once_per_order(alloc_engine, emitter, count_rows):
    text = HEADER + "".join(f"PO-{i},Cust {i},North,PN-{i},{i},1,\n" for i in range(1, 6))
    report = await alloc_engine.import_orders(text)

    assert [c["po_number"] for c in report.created] == [f"PO-{i}" for i in range(1, 6)]
    assert [e.op for e in emitter.events] == ["import_orders"] * 5
    assert await count_rows(PurchaseOrder) == 5
    assert await count_rows(Notification) == 5


@pytest.mark.asyncio
async def test_malformed_rows_are_reported_not_imported(alloc_engine, count_rows):
    text = HEADER + "PO-1,A,North,PN-1,2,1,\nPO-1,A,North,,2,1,\nPO-2,B,North,PN-2,abc,1,\n"
    report = await alloc_engine.import_orders(text)

    assert [c["po_number"] for c in report.created] == ["PO-1"]
    assert [s.row_no for s in report.skipped] == [3, 4]
    assert await count_rows(PurchaseOrderLine) == 1


@pytest.mark.asyncio
async def test_failed_chunk_keeps_earlier_chunks(alloc_engine, count_rows):
    good = [
        ImportedOrder(key=f"PO-{i}", header={"po_number": f"PO-{i}", "customer_name": "A"},
                      lines=[{"part_number": "PN-1", "quantity": 1, "rate": "1"}])
        for i in (1, 2)
    ]
    bad = ImportedOrder(key="PO-3", header={"po_number": "PO-3", "customer_name": "A"},
                        lines=[{"part_number": "PN-1", "quantity": -1, "rate": "1"}])

    with pytest.raises(PartialBatchFailure) as ei:
        await alloc_engine.import_orders(ParsedImport(orders=good + [bad]))

    err = ei.value
    assert err.stage == "import"
    assert err.chunk_index == 1
    assert len(err.committed) == 2
    assert await count_rows(PurchaseOrder) == 2
