# postock/services/csv_export.py
"""
CSV 导出 / 模板 / 库存上传解析。

字段含逗号、双引号或换行时整体加双引号，内部双引号加倍（csv.QUOTE_MINIMAL）。
"""
from __future__ import annotations

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Sequence

from postock.models.purchase_order import PurchaseOrder
from postock.models.stock_position import StockPosition
from postock.services.errors import MalformedImport
from postock.services.po_import import IMPORT_TEMPLATE_HEADERS

ORDER_EXPORT_HEADERS = [
    "ID",
    "PO Number",
    "Customer Name",
    "PO Date",
    "Main Branch",
    "Sub Branch",
    "Status",
    "Order Status",
    "Fulfillment Status",
    "Total Value",
    "Sale Type",
    "Payment Status",
    "Credit Terms",
    "Created At",
]

STOCK_EXPORT_HEADERS = ["Part Number", "Description", "Total", "Allocated", "Available", "Updated At"]
STOCK_TEMPLATE_HEADERS = ["Part Number", "Description", "Quantity"]


def _fmt(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


def _write(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_fmt(v) for v in row])
    return buf.getvalue()


def export_orders_csv(orders: Iterable[PurchaseOrder]) -> str:
    return _write(
        ORDER_EXPORT_HEADERS,
        (
            [
                po.id,
                po.po_number,
                po.customer_name,
                po.po_date,
                po.main_branch,
                po.sub_branch,
                po.status,
                po.order_status,
                po.fulfillment_status,
                po.total_value,
                po.sale_type,
                po.payment_status,
                po.credit_terms,
                po.created_at,
            ]
            for po in orders
        ),
    )


def export_stock_csv(positions: Iterable[StockPosition]) -> str:
    return _write(
        STOCK_EXPORT_HEADERS,
        (
            [p.part_number, p.description, p.total_qty, p.allocated_qty, p.available, p.updated_at]
            for p in positions
        ),
    )


def stock_template_csv() -> str:
    return _write(STOCK_TEMPLATE_HEADERS, [["PN-100", "Sample part", 10]])


def order_import_template_csv() -> str:
    sample: Dict[str, str] = {
        "Main -Branch": "Bengaluru",
        "Account Name": "Innovate Inc.",
        "PO.NO": "PO-REF-001",
        "PO DATE": "2024-03-15",
        "Item: Item Name": "HAMMER-01",
        "Item: Item Description": "Heavy Duty Hammer",
        "Quantity": "10",
        "Unit Price": "100.00",
        "Item Status": "Not Available",
    }
    return _write(IMPORT_TEMPLATE_HEADERS, [[sample.get(h, "") for h in IMPORT_TEMPLATE_HEADERS]])


def parse_stock_csv(text: str) -> List[Dict[str, Any]]:
    """
    库存上传 CSV → 行字典（part_number / description / quantity 原样字符串）。

    表头必须包含 Part Number 与 Quantity（忽略大小写），Description 可选；
    行级合法性由 stock_service.normalize_upload_rows 判断。
    """
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    header = next(reader, None)
    if header is None:
        raise MalformedImport("stock upload file is empty")

    lowered = [(h or "").strip().lower() for h in header]
    if "part number" not in lowered or "quantity" not in lowered:
        raise MalformedImport(
            "stock upload header must contain 'Part Number' and 'Quantity'",
            context={"header": header},
        )
    i_pn = lowered.index("part number")
    i_qty = lowered.index("quantity")
    i_desc = lowered.index("description") if "description" in lowered else None

    out: List[Dict[str, Any]] = []
    for row in reader:
        if not any((c or "").strip() for c in row):
            continue

        def cell(i):
            return row[i].strip() if i is not None and i < len(row) else ""

        out.append({"part_number": cell(i_pn), "quantity": cell(i_qty), "description": cell(i_desc)})
    return out
