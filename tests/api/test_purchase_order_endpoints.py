# tests/api/test_purchase_order_endpoints.py
from __future__ import annotations

from decimal import Decimal

import pytest

pytestmark = pytest.mark.asyncio


def _payload(po_number: str = "PO-100", **extra):
    body = {
        "po_number": po_number,
        "customer_name": "Acme Motors",
        "main_branch": "North",
        "sale_type": "Credit",
        "lines": [
            {"part_number": "PN-1", "quantity": 5, "rate": "12.50"},
            {"part_number": "PN-2", "quantity": 2, "rate": "3", "gst": "18"},
        ],
    }
    body.update(extra)
    return body


async def test_create_and_fetch_order(client):
    r = await client.post("/purchase-orders", json=_payload())
    assert r.status_code == 201, r.text
    po = r.json()
    assert po["status"] == "Open"
    assert po["version"] == 1
    assert [ln["line_no"] for ln in po["lines"]] == [1, 2]
    assert {ln["status"] for ln in po["lines"]} == {"Not Available"}
    # Decimal 以字符串返回
    assert isinstance(po["total_value"], str)
    assert Decimal(po["total_value"]) == Decimal("68.50")
    assert Decimal(po["lines"][1]["gst"]) == Decimal("18")

    r = await client.get(f"/purchase-orders/{po['id']}")
    assert r.status_code == 200
    assert r.json()["po_number"] == "PO-100"

    r = await client.get("/purchase-orders", params={"search": "acme"})
    assert [x["id"] for x in r.json()] == [po["id"]]


async def test_create_order_requires_lines(client):
    r = await client.post("/purchase-orders", json=_payload(lines=[]))
    assert r.status_code == 422
    assert r.json()["error_code"] == "request_validation_error"


async def test_unknown_order_is_404(client):
    r = await client.get("/purchase-orders/999")
    assert r.status_code == 404
    assert r.json()["error_code"] == "unknown_order"


async def test_allocate_and_deallocate_over_http(client, alloc_engine):
    await alloc_engine.register_part("PN-1", initial_qty=6)
    po = (await client.post("/purchase-orders", json=_payload())).json()

    r = await client.post(f"/purchase-orders/{po['id']}/allocate", json={"part_number": "pn-1", "qty": 4})
    assert r.status_code == 200, r.text
    body = r.json()
    assert (body["line_no"], body["line_allocated"], body["line_remaining"], body["available"]) == (1, 4, 1, 2)

    r = await client.post(f"/purchase-orders/{po['id']}/allocate", json={"part_number": "PN-1", "qty": 3})
    assert r.status_code == 409
    assert r.json()["error_code"] == "insufficient_available"

    r = await client.post(f"/purchase-orders/{po['id']}/deallocate", json={"part_number": "PN-1", "qty": 4})
    assert r.status_code == 200
    assert r.json()["available"] == 6

    r = await client.post(f"/purchase-orders/{po['id']}/allocate", json={"part_number": "PN-2", "qty": 1})
    assert r.status_code == 404
    assert r.json()["error_code"] == "unknown_part"


async def test_item_status_requires_confirmation(client, read_po):
    po = (await client.post("/purchase-orders", json=_payload())).json()
    url = f"/purchase-orders/{po['id']}/item-status"

    r = await client.post(url, json={"status": "Dispatched", "part_number": "PN-1"})
    assert r.status_code == 409
    assert r.json()["error_code"] == "confirmation_required"
    assert (await read_po(po["id"])).lines[0].status == "Not Available"

    r = await client.post(url, json={"status": "Dispatched", "part_number": "PN-1", "confirmed": True})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "Partially Dispatched"

    r = await client.post(url, json={"status": "Dispatched", "line_no": 2, "confirmed": True})
    assert r.json()["status"] == "Fulfilled"

    r = await client.post(url, json={"status": "Shipped", "line_no": 2, "confirmed": True})
    assert r.status_code == 422


async def test_cancel_then_allocate_is_rejected(client, alloc_engine):
    await alloc_engine.register_part("PN-1", initial_qty=6)
    po = (await client.post("/purchase-orders", json=_payload())).json()

    r = await client.post(f"/purchase-orders/{po['id']}/cancel", json={})
    assert r.status_code == 409

    r = await client.post(f"/purchase-orders/{po['id']}/cancel", json={"confirmed": True})
    assert r.json()["status"] == "Cancelled"

    r = await client.post(f"/purchase-orders/{po['id']}/allocate", json={"part_number": "PN-1", "qty": 1})
    assert r.status_code == 409
    assert r.json()["error_code"] == "order_cancelled"


async def test_patch_header(client):
    po = (await client.post("/purchase-orders", json=_payload())).json()

    r = await client.patch(f"/purchase-orders/{po['id']}", json={"invoice_number": "INV-1", "sub_branch": "East"})
    assert r.status_code == 200, r.text
    assert (r.json()["invoice_number"], r.json()["sub_branch"], r.json()["version"]) == ("INV-1", "East", 2)

    r = await client.patch(f"/purchase-orders/{po['id']}", json={"status": "Fulfilled"})
    assert r.status_code == 422

    r = await client.patch(f"/purchase-orders/{po['id']}", json={"order_status": "Invoiced"})
    assert r.json()["order_status"] == "Invoiced"

    r = await client.patch(f"/purchase-orders/{po['id']}", json={"fulfillment_status": "Half"})
    assert r.status_code == 422

    for blank in (None, "  "):
        r = await client.patch(f"/purchase-orders/{po['id']}", json={"customer_name": blank})
        assert r.status_code == 422, r.text
        assert r.json()["error_code"] == "invalid_header"
    assert (await client.get(f"/purchase-orders/{po['id']}")).json()["customer_name"] == "Acme Motors"


async def test_logs_delete_and_branch_delete(client):
    a = (await client.post("/purchase-orders", json=_payload("PO-A"))).json()
    await client.post("/purchase-orders", json=_payload("PO-B", sub_branch="East"))
    await client.post("/purchase-orders", json=_payload("PO-C", main_branch="South"))

    r = await client.get(f"/purchase-orders/{a['id']}/logs")
    assert len(r.json()) == 1

    r = await client.delete(f"/purchase-orders/{a['id']}")
    assert r.status_code == 409
    assert r.json()["error_code"] == "confirmation_required"
    assert (await client.get(f"/purchase-orders/{a['id']}")).status_code == 200

    r = await client.delete(f"/purchase-orders/{a['id']}", params={"confirm": "true"})
    assert r.status_code == 200
    assert r.json() == {"orders": [a["id"]], "logs": 1, "notifications": 1}
    assert (await client.get(f"/purchase-orders/{a['id']}")).status_code == 404

    r = await client.delete("/purchase-orders/by-branch", params={"main_branch": "North"})
    assert r.status_code == 409

    r = await client.delete("/purchase-orders/by-branch", params={"main_branch": "North", "confirm": "true"})
    assert len(r.json()["orders"]) == 1
    assert [p["po_number"] for p in (await client.get("/purchase-orders")).json()] == ["PO-C"]


async def test_import_export_roundtrip_headers(client):
    csv_body = (
        "PO.NO,Account Name,Item: Item Name,Quantity,Unit Price\n"
        "PO-9,Acme Motors,PN-1,5,100\n"
        "PO-9,Acme Motors,PN-2,3,50\n"
        "PO-9,Acme Motors,,1,10\n"
    )
    r = await client.post("/purchase-orders/import", content=csv_body, headers={"content-type": "text/csv"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert [(c["po_number"], c["lines"]) for c in body["created"]] == [("PO-9", 2)]
    assert [s["row_no"] for s in body["skipped"]] == [4]

    r = await client.post("/purchase-orders/import", json={"rows": []})
    assert r.status_code == 415

    r = await client.get("/purchase-orders/export.csv")
    assert r.status_code == 200
    lines = r.text.splitlines()
    assert lines[0].startswith("ID,PO Number,Customer Name")
    assert len(lines) == 2
    assert lines[1].split(",")[1] == "PO-9"

    r = await client.get("/purchase-orders/template.csv")
    assert "PO.NO" in r.text.splitlines()[0].split(",")


async def test_malformed_import_file_is_422(client):
    r = await client.post(
        "/purchase-orders/import", content="PO.NO,Quantity\nPO-1,1\n", headers={"content-type": "text/csv"}
    )
    assert r.status_code == 422
    assert r.json()["error_code"] == "malformed_import"


async def test_patch_line(client, alloc_engine):
    await alloc_engine.register_part("PN-1", initial_qty=6)
    po = (await client.post("/purchase-orders", json=_payload())).json()
    url = f"/purchase-orders/{po['id']}/lines/1"

    r = await client.patch(url, json={"oa_no": "OA-7", "oa_date": "2024-03-01", "delivery_qty": 2})
    assert r.status_code == 200, r.text
    line = r.json()["lines"][0]
    assert (line["oa_no"], line["oa_date"], line["delivery_qty"]) == ("OA-7", "2024-03-01", 2)
    assert r.json()["version"] == 2

    r = await client.patch(url, json={"delivery_qty": 1})
    assert r.status_code == 422
    assert r.json()["error_code"] == "quantity_decreased"

    r = await client.patch(url, json={"allocated_qty": 5})
    assert r.status_code == 422
    assert r.json()["error_code"] == "request_validation_error"

    await client.post(f"/purchase-orders/{po['id']}/allocate", json={"part_number": "PN-1", "qty": 4})
    r = await client.patch(url, json={"quantity": 3})
    assert r.status_code == 422
    assert r.json()["error_code"] == "quantity_below_allocated"

    r = await client.patch(f"/purchase-orders/{po['id']}/lines/9", json={"oa_no": "X"})
    assert r.status_code == 404
    assert r.json()["error_code"] == "unknown_line_item"


async def test_reports(client):
    a = (await client.post("/purchase-orders", json=_payload("PO-A"))).json()
    b = (await client.post("/purchase-orders", json=_payload("PO-B"))).json()
    c = (await client.post("/purchase-orders", json=_payload("PO-C"))).json()

    await client.patch(f"/purchase-orders/{a['id']}", json={"fulfillment_status": "Not Available"})
    await client.patch(f"/purchase-orders/{a['id']}/lines/1", json={"oa_no": "OA-1", "oa_date": "2024-01-05"})
    await client.patch(f"/purchase-orders/{b['id']}", json={"fulfillment_status": "Available"})
    await client.patch(
        f"/purchase-orders/{c['id']}", json={"fulfillment_status": "Available", "order_status": "Invoiced"}
    )

    r = await client.get("/purchase-orders/reports/missing-oa")
    assert r.status_code == 200, r.text
    assert [(x["po_number"], [ln["line_no"] for ln in x["lines"]]) for x in r.json()] == [("PO-A", [2])]

    r = await client.get("/purchase-orders/reports/dispatch-pending")
    assert r.status_code == 200, r.text
    assert [x["po_number"] for x in r.json()] == ["PO-B"]
