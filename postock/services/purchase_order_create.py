# postock/services/purchase_order_create.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import LineItemStatus
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.services.errors import ValidationError
from postock.services.order_status import derive_order_status, parse_item_status
from postock.utils.time import utcnow

# 可由创建 / 导入 / 头部编辑写入的单头字段（status 除外：只能派生或取消）
HEADER_FIELDS = (
    "po_number",
    "customer_name",
    "po_date",
    "main_branch",
    "sub_branch",
    "order_status",
    "fulfillment_status",
    "sales_order_number",
    "so_date",
    "sale_type",
    "payment_status",
    "credit_terms",
    "billing_address",
    "bill_to_gstin",
    "shipping_address",
    "ship_to_gstin",
    "quote_number",
    "general_remarks",
    "dispatch_remarks",
    "invoice_number",
    "invoice_date",
)

LINE_TEXT_FIELDS = ("item_desc", "item_type", "category", "oa_no", "item_remarks")


def to_decimal(raw: Any, *, field: str, line_no: int) -> Optional[Decimal]:
    if raw is None or raw == "":
        return None
    try:
        val = Decimal(str(raw))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            f"line {line_no}: {field} {raw!r} is not a number",
            code="invalid_line",
            context={"line_no": line_no, "field": field},
        ) from e
    if val < 0:
        raise ValidationError(
            f"line {line_no}: {field} must be >= 0",
            code="invalid_line",
            context={"line_no": line_no, "field": field},
        )
    return val


def normalize_lines(
    lines: Sequence[Mapping[str, Any]],
    *,
    keep_item_status: bool = False,
) -> List[Dict[str, Any]]:
    """
    行项目归一：
    - part_number 必填（去首尾空白）；
    - quantity 为非负整数，rate 为非负金额；
    - keep_item_status=False 时所有行初始为 Not Available（手工建单）。
    """
    out: List[Dict[str, Any]] = []
    for idx, raw in enumerate(lines, start=1):
        pn = str(raw.get("part_number") or "").strip()
        if not pn:
            raise ValidationError(
                f"line {idx}: part_number must not be blank",
                code="invalid_line",
                context={"line_no": idx, "field": "part_number"},
            )

        qty_raw = raw.get("quantity", 0)
        if isinstance(qty_raw, bool) or not isinstance(qty_raw, int) or qty_raw < 0:
            raise ValidationError(
                f"line {idx}: quantity must be a non-negative integer",
                code="invalid_line",
                context={"line_no": idx, "field": "quantity"},
            )

        status = LineItemStatus.NOT_AVAILABLE
        if keep_item_status:
            status = parse_item_status(raw.get("status")) or LineItemStatus.NOT_AVAILABLE

        norm: Dict[str, Any] = {
            "line_no": idx,
            "part_number": pn,
            "quantity": qty_raw,
            "rate": to_decimal(raw.get("rate"), field="rate", line_no=idx) or Decimal("0"),
            "discount": to_decimal(raw.get("discount"), field="discount", line_no=idx),
            "gst": to_decimal(raw.get("gst"), field="gst", line_no=idx),
            "status": status.value,
            "oa_date": raw.get("oa_date"),
        }
        for f in LINE_TEXT_FIELDS:
            val = raw.get(f)
            norm[f] = (str(val).strip() or None) if val is not None else None
        out.append(norm)
    return out


def build_po(header: Mapping[str, Any], lines: List[Dict[str, Any]]) -> PurchaseOrder:
    po_number = str(header.get("po_number") or "").strip()
    if not po_number:
        raise ValidationError("po_number must not be blank", code="invalid_header")

    fields = {k: header.get(k) for k in HEADER_FIELDS if header.get(k) is not None}
    fields["po_number"] = po_number
    fields["customer_name"] = str(header.get("customer_name") or "").strip()

    po = PurchaseOrder(**fields)
    po.lines = [PurchaseOrderLine(**ln) for ln in lines]
    po.status = derive_order_status(ln["status"] for ln in lines).value
    now = utcnow()
    po.created_at = now
    po.updated_at = now
    return po


async def create_po(
    session: AsyncSession,
    *,
    header: Mapping[str, Any],
    lines: Sequence[Mapping[str, Any]],
    keep_item_status: bool = False,
) -> PurchaseOrder:
    """
    创建“头 + 多行”的客户采购单（本层不 commit）。

    手工建单至少一行；导入时 keep_item_status=True 保留 CSV 中可解析的行状态，
    整单状态始终按行派生。不产生任何分配副作用。
    """
    if not lines:
        raise ValidationError("a purchase order needs at least one line", code="invalid_line")

    norm = normalize_lines(lines, keep_item_status=keep_item_status)
    po = build_po(header, norm)
    session.add(po)
    await session.flush()
    return po
