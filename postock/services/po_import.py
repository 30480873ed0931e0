# postock/services/po_import.py
"""
PO 批量导入：CSV 文本 → 按 PO 号分组的待建订单。

规则：
- 表头按别名精确匹配（忽略大小写与首尾空白），缺少料号列整体拒绝；
- 按 po_number 精确（区分大小写）分组，单头字段取组内第一行，行字段逐行取；
- 料号为空的行丢弃；数量 / 单价非数字或为负的行丢弃（均记录为 MalformedImportRow）；
- PO 号为空的行各自成单，使用生成的 PO-… 编号；
- 行状态取 Item Status 列（可解析时），否则 Not Available。

本模块只做解析，不触碰数据库；落库见 AllocationEngine.import_orders。
"""
from __future__ import annotations

import csv
import io
import itertools
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional, Sequence

from postock.models.enums import LineItemStatus
from postock.services.errors import MalformedImport, MalformedImportRow
from postock.services.order_status import parse_item_status

# 规范字段 → 可接受的表头写法（小写）
HEADER_ALIASES: Dict[str, Sequence[str]] = {
    # 单头
    "po_number": ("po.no", "po number", "po no", "customer po reference no"),
    "customer_name": ("account name", "customer name", "customer"),
    "po_date": ("po date", "dates", "date"),
    "main_branch": ("main -branch", "main branch", "branch"),
    "sub_branch": ("sub - branch", "sub branch"),
    "sales_order_number": ("so.no", "sale order number", "sales order number"),
    "so_date": ("so date",),
    "sale_type": ("sale type",),
    "credit_terms": ("credit days", "credit terms"),
    "order_status": ("order status",),
    "fulfillment_status": ("materials", "fulfillment status"),
    "general_remarks": ("general remarks", "remarks"),
    "invoice_number": ("invoice number",),
    "invoice_date": ("invoice date",),
    "billing_address": ("billing address",),
    "bill_to_gstin": ("bill to gstin",),
    "shipping_address": ("shipping address",),
    "ship_to_gstin": ("ship to gstin",),
    "quote_number": ("quote number",),
    # 行
    "part_number": ("item: item name", "part number", "part no"),
    "item_type": ("item: item type", "item type"),
    "category": ("category",),
    "item_desc": ("item: item description", "item description", "description"),
    "quantity": ("quantity", "qty"),
    "rate": ("unit price", "rate"),
    "discount": ("discount amount", "discount"),
    "tax_amount": ("tax amount",),
    "status": ("item status",),
    "oa_no": ("oa no",),
    "oa_date": ("oa date",),
    "item_remarks": ("item remarks",),
}

LINE_KEYS = (
    "part_number",
    "item_type",
    "category",
    "item_desc",
    "quantity",
    "rate",
    "discount",
    "tax_amount",
    "status",
    "oa_no",
    "oa_date",
    "item_remarks",
)
HEADER_KEYS = tuple(k for k in HEADER_ALIASES if k not in LINE_KEYS)
DATE_KEYS = ("po_date", "so_date", "invoice_date")

IMPORT_TEMPLATE_HEADERS = [
    "Main -Branch",
    "Sub - branch",
    "Account Name",
    "SO.NO",
    "SO DATE",
    "PO.NO",
    "PO DATE",
    "Sale Type",
    "Credit Days",
    "Order Status",
    "Materials",
    "General Remarks",
    "Invoice Number",
    "Invoice Date",
    "Item: Item Name",
    "Item: Item Type",
    "Category",
    "Item: Item Description",
    "Quantity",
    "Unit Price",
    "Discount Amount",
    "Tax Amount",
    "Item Status",
    "Oa No",
    "Oa Date",
    "Item Remarks",
    "Billing Address",
    "Bill To GSTIN",
    "Shipping Address",
    "Ship To GSTIN",
    "Quote Number",
]

_DATE_FORMATS = ("%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d", "%d.%m.%Y")
_seq = itertools.count(1)


@dataclass
class ImportedOrder:
    key: str
    header: Dict[str, Any]
    lines: List[Dict[str, Any]] = field(default_factory=list)
    source_rows: List[int] = field(default_factory=list)

    @property
    def po_number(self) -> str:
        return str(self.header.get("po_number") or "")


@dataclass
class ParsedImport:
    orders: List[ImportedOrder] = field(default_factory=list)
    skipped: List[MalformedImportRow] = field(default_factory=list)

    @property
    def line_count(self) -> int:
        return sum(len(o.lines) for o in self.orders)


def generate_po_number() -> str:
    """PO 号缺失时的占位编号：毫秒时间戳 + 进程内序号，保证同批唯一。"""
    return f"PO-{int(time.time() * 1000)}-{next(_seq)}"


def resolve_columns(header_row: Sequence[str]) -> Dict[str, int]:
    """表头 → {规范字段: 列下标}；同一字段多列命中时取第一列。"""
    lowered = [(h or "").strip().lower() for h in header_row]
    cols: Dict[str, int] = {}
    for key, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                cols[key] = lowered.index(alias)
                break
    if "part_number" not in cols:
        raise MalformedImport(
            "import header has no part number column (expected 'Item: Item Name' or 'Part Number')",
            context={"header": list(header_row)},
        )
    return cols


def parse_date(raw: str) -> Optional[date]:
    text = (raw or "").strip()
    if not text:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_number(raw: str) -> Optional[Decimal]:
    text = (raw or "").strip().replace(",", "")
    if not text:
        return Decimal("0")
    try:
        val = Decimal(text)
    except InvalidOperation:
        return None
    return val if val.is_finite() else None


def _iter_rows(text: str) -> Iterator[tuple[int, List[str]]]:
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    for row in reader:
        yield reader.line_num, row


def _cell(row: Sequence[str], cols: Dict[str, int], key: str) -> str:
    idx = cols.get(key)
    if idx is None or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def _line_from_row(row_no: int, row: Sequence[str], cols: Dict[str, int]) -> Dict[str, Any]:
    qty = _parse_number(_cell(row, cols, "quantity"))
    if qty is None or qty < 0 or qty != qty.to_integral_value():
        raise MalformedImportRow(row_no, f"quantity {_cell(row, cols, 'quantity')!r} is not a non-negative integer")
    rate = _parse_number(_cell(row, cols, "rate"))
    if rate is None or rate < 0:
        raise MalformedImportRow(row_no, f"unit price {_cell(row, cols, 'rate')!r} is not a non-negative number")
    discount = _parse_number(_cell(row, cols, "discount"))
    if discount is None or discount < 0:
        raise MalformedImportRow(row_no, f"discount {_cell(row, cols, 'discount')!r} is not a non-negative number")
    tax = _parse_number(_cell(row, cols, "tax_amount"))
    if tax is None or tax < 0:
        raise MalformedImportRow(row_no, f"tax amount {_cell(row, cols, 'tax_amount')!r} is not a non-negative number")

    quantity = int(qty)
    # GST 百分比由税额反推：tax / (qty × rate − discount)
    base = Decimal(quantity) * rate - discount
    gst = (tax / base * 100).quantize(Decimal("0.01")) if tax > 0 and base > 0 else None

    status = parse_item_status(_cell(row, cols, "status")) or LineItemStatus.NOT_AVAILABLE

    return {
        "part_number": _cell(row, cols, "part_number"),
        "item_type": _cell(row, cols, "item_type") or None,
        "category": _cell(row, cols, "category") or None,
        "item_desc": _cell(row, cols, "item_desc") or None,
        "quantity": quantity,
        "rate": rate,
        "discount": discount if discount > 0 else None,
        "gst": gst,
        "status": status.value,
        "oa_no": _cell(row, cols, "oa_no") or None,
        "oa_date": parse_date(_cell(row, cols, "oa_date")),
        "item_remarks": _cell(row, cols, "item_remarks") or None,
    }


def _header_from_row(row: Sequence[str], cols: Dict[str, int]) -> Dict[str, Any]:
    header: Dict[str, Any] = {}
    for key in HEADER_KEYS:
        val = _cell(row, cols, key)
        if key in DATE_KEYS:
            header[key] = parse_date(val)
        else:
            header[key] = val or None
    return header


def parse_orders_csv(text: str) -> ParsedImport:
    rows = _iter_rows(text)
    header_row: Optional[List[str]] = None
    for _, row in rows:
        if any((c or "").strip() for c in row):
            header_row = row
            break
    if header_row is None:
        raise MalformedImport("import file is empty")
    cols = resolve_columns(header_row)

    result = ParsedImport()
    groups: Dict[str, ImportedOrder] = {}

    for row_no, row in rows:
        if not any((c or "").strip() for c in row):
            continue

        # 分组键为去首尾空白后的 PO 号，大小写敏感
        po_number = _cell(row, cols, "po_number")
        if po_number:
            key = po_number
        else:
            key = f"__row_{row_no}"

        group = groups.get(key)
        if group is None:
            # 单头字段取组内第一行
            header = _header_from_row(row, cols)
            header["po_number"] = po_number or generate_po_number()
            header["customer_name"] = header.get("customer_name") or ""
            group = ImportedOrder(key=key, header=header)
            groups[key] = group

        if not _cell(row, cols, "part_number"):
            result.skipped.append(MalformedImportRow(row_no, "missing part number"))
            continue
        try:
            line = _line_from_row(row_no, row, cols)
        except MalformedImportRow as e:
            result.skipped.append(e)
            continue

        group.lines.append(line)
        group.source_rows.append(row_no)

    result.orders = [g for g in groups.values() if g.lines]
    return result
