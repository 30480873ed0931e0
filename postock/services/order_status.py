# postock/services/order_status.py
"""
行状态 → 整单状态派生，以及行状态变更。

派生规则（只看 Dispatched）：
    全部 Dispatched            -> Fulfilled
    至少一个 Dispatched         -> Partially Dispatched
    否则（含无行的订单）         -> Open
Cancelled 只能显式进入，派生不会覆盖它。
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import LineItemStatus, OrderStatus, TransitionKind
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.services.errors import OrderCancelled, UnknownLineItem, ValidationError
from postock.services.purchase_order_queries import require_po
from postock.utils.time import utcnow

# 可得程度排序，用于判断前进/回退
ITEM_STATUS_RANK = {
    LineItemStatus.NOT_AVAILABLE: 0,
    LineItemStatus.PARTIALLY_AVAILABLE: 1,
    LineItemStatus.AVAILABLE: 2,
    LineItemStatus.DISPATCHED: 3,
}


def parse_item_status(raw: object) -> Optional[LineItemStatus]:
    """宽松解析：接受取值（'Partially Available'）或名字（'PARTIALLY_AVAILABLE'），忽略大小写。"""
    if isinstance(raw, LineItemStatus):
        return raw
    text = str(raw or "").strip()
    if not text:
        return None
    norm = " ".join(text.replace("_", " ").split()).lower()
    for st in LineItemStatus:
        if st.value.lower() == norm:
            return st
    return None


def derive_order_status(statuses: Iterable[str]) -> OrderStatus:
    values = list(statuses)
    if not values:
        return OrderStatus.OPEN
    dispatched = sum(1 for s in values if s == LineItemStatus.DISPATCHED)
    if dispatched == len(values):
        return OrderStatus.FULFILLED
    if dispatched > 0:
        return OrderStatus.PARTIALLY_DISPATCHED
    return OrderStatus.OPEN


def recompute_order_status(po: PurchaseOrder) -> str:
    """按当前行重算派生状态（已取消的订单保持 Cancelled）。"""
    if po.status != OrderStatus.CANCELLED:
        po.status = derive_order_status(ln.status for ln in po.lines).value
    return po.status


def describe_transition(old: str, new: str) -> TransitionKind:
    old_st = parse_item_status(old)
    new_st = parse_item_status(new)
    if old_st is None or new_st is None:
        raise ValidationError(f"unknown item status transition {old!r} -> {new!r}", code="unknown_item_status")
    if old_st == new_st:
        return TransitionKind.UNCHANGED
    if ITEM_STATUS_RANK[new_st] > ITEM_STATUS_RANK[old_st]:
        return TransitionKind.FORWARD
    return TransitionKind.BACKWARD


def select_status_targets(
    po: PurchaseOrder,
    *,
    line_no: Optional[int] = None,
    part_number: Optional[str] = None,
) -> List[PurchaseOrderLine]:
    """line_no 优先；否则匹配该料号的所有行。"""
    if line_no is not None:
        hit = [ln for ln in po.lines if ln.line_no == line_no]
        if not hit:
            raise UnknownLineItem(po.id, line_no=line_no)
        return hit
    if not (part_number or "").strip():
        raise ValidationError("either line_no or part_number is required", code="missing_line_target")
    hit = [ln for ln in po.lines if ln.matches_part(part_number)]
    if not hit:
        raise UnknownLineItem(po.id, part_number=part_number)
    return hit


async def update_item_status(
    session: AsyncSession,
    *,
    po_id: int,
    status: LineItemStatus | str,
    line_no: Optional[int] = None,
    part_number: Optional[str] = None,
) -> tuple[PurchaseOrder, List[PurchaseOrderLine]]:
    new_status = parse_item_status(status)
    if new_status is None:
        raise ValidationError(f"unknown item status {status!r}", code="unknown_item_status")

    po = await require_po(session, po_id, for_update=True)
    if po.is_cancelled:
        raise OrderCancelled(po_id)

    targets = select_status_targets(po, line_no=line_no, part_number=part_number)
    for ln in targets:
        ln.status = new_status.value

    recompute_order_status(po)
    # 聚合根整体 bump version
    po.updated_at = utcnow()
    await session.flush()
    return po, targets


async def cancel_order(session: AsyncSession, *, po_id: int) -> PurchaseOrder:
    """显式取消；已取消的订单再次取消视为无操作。不自动释放预留。"""
    po = await require_po(session, po_id, for_update=True)
    if not po.is_cancelled:
        po.status = OrderStatus.CANCELLED.value
        po.updated_at = utcnow()
        await session.flush()
    return po
