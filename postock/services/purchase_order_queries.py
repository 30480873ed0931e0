# postock/services/purchase_order_queries.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from postock.models.enums import FulfillmentLabel, LineItemStatus, OrderStage, OrderStatus
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.services.errors import UnknownOrder


async def get_po_with_lines(
    session: AsyncSession,
    po_id: int,
    *,
    for_update: bool = False,
) -> Optional[PurchaseOrder]:
    """
    获取带行的采购单（行按 line_no 升序）。

    - for_update=True 时对头表加 FOR UPDATE，用于分配 / 状态变更
    """
    stmt = (
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines))
        .where(PurchaseOrder.id == po_id)
    )
    if for_update:
        stmt = stmt.with_for_update()

    res = await session.execute(stmt)
    po = res.scalars().first()
    if po is None:
        return None

    if po.lines:
        po.lines.sort(key=lambda line: (line.line_no, line.id))
    return po


async def require_po(
    session: AsyncSession,
    po_id: int,
    *,
    for_update: bool = False,
) -> PurchaseOrder:
    po = await get_po_with_lines(session, po_id, for_update=for_update)
    if po is None:
        raise UnknownOrder(po_id)
    return po


async def list_pos(
    session: AsyncSession,
    *,
    skip: int = 0,
    limit: Optional[int] = 100,
    status: Optional[str] = None,
    search: Optional[str] = None,
    main_branch: Optional[str] = None,
    sub_branch: Optional[str] = None,
) -> List[PurchaseOrder]:
    stmt = (
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines))
        .order_by(PurchaseOrder.id.desc())
    )
    if status:
        stmt = stmt.where(PurchaseOrder.status == status)
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(PurchaseOrder.po_number.ilike(like), PurchaseOrder.customer_name.ilike(like))
        )
    if main_branch:
        stmt = stmt.where(PurchaseOrder.main_branch == main_branch)
    if sub_branch:
        stmt = stmt.where(PurchaseOrder.sub_branch == sub_branch)
    if skip:
        stmt = stmt.offset(max(skip, 0))
    if limit is not None:
        stmt = stmt.limit(max(limit, 1))

    res = await session.execute(stmt)
    rows = list(res.scalars().unique())
    for po in rows:
        po.lines.sort(key=lambda line: (line.line_no, line.id))
    return rows


async def po_ids_by_branch(
    session: AsyncSession,
    *,
    main_branch: str,
    sub_branch: Optional[str] = None,
) -> List[int]:
    stmt = select(PurchaseOrder.id).where(PurchaseOrder.main_branch == main_branch)
    if sub_branch:
        stmt = stmt.where(PurchaseOrder.sub_branch == sub_branch)
    return [int(x) for x in (await session.execute(stmt.order_by(PurchaseOrder.id))).scalars().all()]


@dataclass
class AllocationCandidate:
    po_id: int
    po_number: str
    customer_name: str
    line_no: int
    part_number: str
    quantity: int
    allocated_qty: int
    needed_qty: int


async def allocation_candidates(
    session: AsyncSession,
    part_number: str,
    *,
    search: Optional[str] = None,
) -> List[AllocationCandidate]:
    """
    含该料号且仍有缺口（quantity − allocated > 0）的未取消订单行。
    可按 PO 号 / 客户名子串过滤（忽略大小写）。
    """
    key = (part_number or "").strip().lower()
    stmt = (
        select(PurchaseOrderLine, PurchaseOrder)
        .join(PurchaseOrder, PurchaseOrder.id == PurchaseOrderLine.po_id)
        .where(PurchaseOrder.status != OrderStatus.CANCELLED.value)
        .where(PurchaseOrderLine.quantity > PurchaseOrderLine.allocated_qty)
        .order_by(PurchaseOrder.id.asc(), PurchaseOrderLine.line_no.asc())
    )
    term = (search or "").strip().lower()

    out: List[AllocationCandidate] = []
    for line, po in (await session.execute(stmt)).all():
        if (line.part_number or "").strip().lower() != key:
            continue
        if term and term not in (po.po_number or "").lower() and term not in (po.customer_name or "").lower():
            continue
        out.append(
            AllocationCandidate(
                po_id=po.id,
                po_number=po.po_number,
                customer_name=po.customer_name,
                line_no=line.line_no,
                part_number=line.part_number,
                quantity=int(line.quantity),
                allocated_qty=int(line.allocated_qty),
                needed_qty=int(line.quantity) - int(line.allocated_qty),
            )
        )
    return out


# ----- 报表 -----

MISSING_OA_LABELS = (FulfillmentLabel.PARTIALLY_AVAILABLE.value, FulfillmentLabel.NOT_AVAILABLE.value)
SHIPPED_STAGES = (OrderStage.SHIPPED_IN_SYSTEM_DC.value, OrderStage.INVOICED.value)


@dataclass
class MissingOaRow:
    po: PurchaseOrder
    lines: List[PurchaseOrderLine]


async def missing_oa_report(session: AsyncSession) -> List[MissingOaRow]:
    """
    缺 OA 报表：fulfillment_status 为 Partially / Not Available 的订单中，
    状态为 Not Available 且缺少 oa_no 或 oa_date 的行。没有这类行的订单不出现。
    """
    stmt = (
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines))
        .where(PurchaseOrder.fulfillment_status.in_(MISSING_OA_LABELS))
        .order_by(PurchaseOrder.id.asc())
    )
    out: List[MissingOaRow] = []
    for po in (await session.execute(stmt)).scalars().all():
        lines = sorted(
            (
                ln
                for ln in po.lines
                if ln.status == LineItemStatus.NOT_AVAILABLE.value
                and (not (ln.oa_no or "").strip() or ln.oa_date is None)
            ),
            key=lambda ln: ln.line_no,
        )
        if lines:
            out.append(MissingOaRow(po=po, lines=lines))
    return out


async def dispatch_pending_report(session: AsyncSession) -> List[PurchaseOrder]:
    """待发货报表：fulfillment_status = Available，且 order_status 尚未到已发货 / 已开票。"""
    stmt = (
        select(PurchaseOrder)
        .options(selectinload(PurchaseOrder.lines))
        .where(PurchaseOrder.fulfillment_status == FulfillmentLabel.AVAILABLE.value)
        .where(
            or_(
                PurchaseOrder.order_status.is_(None),
                PurchaseOrder.order_status.not_in(SHIPPED_STAGES),
            )
        )
        .order_by(PurchaseOrder.id.asc())
    )
    rows = list((await session.execute(stmt)).scalars().all())
    for po in rows:
        po.lines.sort(key=lambda line: (line.line_no, line.id))
    return rows
