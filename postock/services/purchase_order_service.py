# postock/services/purchase_order_service.py
from __future__ import annotations

from datetime import date
from typing import Any, List, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.services.errors import UnknownLineItem, ValidationError
from postock.services.purchase_order_create import HEADER_FIELDS, LINE_TEXT_FIELDS, to_decimal
from postock.services.purchase_order_queries import require_po
from postock.utils.time import utcnow

# 单头必填字段：不允许清空
REQUIRED_HEADER_FIELDS = ("po_number", "customer_name")

# 行上可人工维护的字段；allocated_qty / status / part_number 只能走各自的操作
LINE_EDITABLE_FIELDS = (
    "quantity",
    "rate",
    "discount",
    "gst",
    "oa_date",
    "delivery_qty",
    "invoiced_qty",
) + LINE_TEXT_FIELDS
LINE_GUARDED_FIELDS = ("allocated_qty", "status", "part_number", "line_no")
# 只增不减
MONOTONIC_LINE_FIELDS = ("delivery_qty", "invoiced_qty")


async def update_order_header(
    session: AsyncSession,
    *,
    po_id: int,
    fields: Mapping[str, Any],
) -> tuple[PurchaseOrder, List[str]]:
    """
    编辑单头 / 业务标签（order_status、fulfillment_status、备注、地址、开票信息等）。

    - status 不可在此修改：它由行状态派生或通过取消进入；
    - po_number / customer_name 不可清空；
    - 已取消的订单仍可编辑标签（例如补开票信息）；
    - 返回 (po, 实际变化的字段列表)。
    """
    if "status" in fields:
        raise ValidationError(
            "status is derived from line items and cannot be edited directly",
            code="status_not_editable",
        )
    unknown = sorted(set(fields) - set(HEADER_FIELDS))
    if unknown:
        raise ValidationError(
            f"unknown header field(s): {', '.join(unknown)}",
            code="unknown_header_field",
            context={"fields": unknown},
        )
    for k in REQUIRED_HEADER_FIELDS:
        if k in fields and not str(fields[k] or "").strip():
            raise ValidationError(f"{k} must not be blank", code="invalid_header", context={"field": k})

    po = await require_po(session, po_id, for_update=True)

    changed: List[str] = []
    for k, v in fields.items():
        if isinstance(v, str):
            v = v.strip()
        if getattr(po, k) != v:
            setattr(po, k, v)
            changed.append(k)

    if changed:
        po.updated_at = utcnow()
        await session.flush()
    return po, changed


def _line_int(raw: Any, *, field: str, line_no: int) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        raise ValidationError(
            f"line {line_no}: {field} must be a non-negative integer",
            code="invalid_line",
            context={"line_no": line_no, "field": field},
        )
    return raw


def _line_date(raw: Any, *, field: str, line_no: int) -> Optional[date]:
    if raw is None or isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as e:
        raise ValidationError(
            f"line {line_no}: {field} must be an ISO date",
            code="invalid_line",
            context={"line_no": line_no, "field": field},
        ) from e


def _normalize_line_fields(line: PurchaseOrderLine, fields: Mapping[str, Any]) -> dict[str, Any]:
    """校验并归一行编辑字段（全部校验在写入之前完成）。"""
    guarded = sorted(set(fields) & set(LINE_GUARDED_FIELDS))
    if guarded:
        raise ValidationError(
            f"line field(s) not editable here: {', '.join(guarded)}",
            code="line_field_not_editable",
            context={"fields": guarded},
        )
    unknown = sorted(set(fields) - set(LINE_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(
            f"unknown line field(s): {', '.join(unknown)}",
            code="unknown_line_field",
            context={"fields": unknown},
        )

    ln = line.line_no
    out: dict[str, Any] = {}
    for k, v in fields.items():
        if k in ("quantity", "delivery_qty", "invoiced_qty"):
            out[k] = _line_int(v, field=k, line_no=ln)
        elif k == "rate":
            val = to_decimal(v, field=k, line_no=ln)
            if val is None:
                raise ValidationError(
                    f"line {ln}: rate must not be blank",
                    code="invalid_line",
                    context={"line_no": ln, "field": k},
                )
            out[k] = val
        elif k in ("discount", "gst"):
            out[k] = to_decimal(v, field=k, line_no=ln)
        elif k == "oa_date":
            out[k] = _line_date(v, field=k, line_no=ln)
        else:
            out[k] = (str(v).strip() or None) if v is not None else None

    if "quantity" in out and out["quantity"] < int(line.allocated_qty):
        raise ValidationError(
            f"line {ln}: quantity {out['quantity']} is below allocated {line.allocated_qty}",
            code="quantity_below_allocated",
            context={"line_no": ln, "quantity": out["quantity"], "allocated": int(line.allocated_qty)},
        )
    for k in MONOTONIC_LINE_FIELDS:
        if k in out and out[k] < int(getattr(line, k)):
            raise ValidationError(
                f"line {ln}: {k} cannot decrease ({getattr(line, k)} -> {out[k]})",
                code="quantity_decreased",
                context={"line_no": ln, "field": k, "current": int(getattr(line, k)), "requested": out[k]},
            )
    return out


async def update_line(
    session: AsyncSession,
    *,
    po_id: int,
    line_no: int,
    fields: Mapping[str, Any],
) -> tuple[PurchaseOrder, PurchaseOrderLine, List[str]]:
    """
    编辑单行：OA 号 / 日期、备注、发货量、开票量、数量与价格。

    - allocated_qty 只能经 allocate / deallocate 变化，status 只能经行状态变更；
    - quantity 不得低于已分配量；
    - delivery_qty / invoiced_qty 只增不减。
    """
    po = await require_po(session, po_id, for_update=True)
    hit = [ln for ln in po.lines if ln.line_no == line_no]
    if not hit:
        raise UnknownLineItem(po_id, line_no=line_no)
    line = hit[0]

    norm = _normalize_line_fields(line, fields)

    changed: List[str] = []
    for k, v in norm.items():
        if getattr(line, k) != v:
            setattr(line, k, v)
            changed.append(k)

    if changed:
        po.updated_at = utcnow()
        await session.flush()
    return po, line, changed
