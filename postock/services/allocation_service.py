# postock/services/allocation_service.py
"""
把共享库存池中的可用量预留给某张 PO 的某一行（以及反向释放）。

校验顺序（全部在第一笔写入之前完成）：
    qty > 0 → PO 存在 → 未取消 → 有匹配行 → 料号已登记
    → qty ≤ available → line.allocated + qty ≤ line.quantity
写入（同一事务）：
    position.allocated += qty；line.allocated += qty；ALLOCATION 流水（reference_id = po_id）
行状态不随分配变化，由操作员单独推进。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import MovementType
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.services.errors import (
    InsufficientAvailable,
    OrderCancelled,
    OverAllocation,
    OverDeallocation,
    UnknownLineItem,
)
from postock.services.ledger_writer import write_movement
from postock.services.purchase_order_queries import require_po
from postock.services.stock_service import require_position, require_positive_qty
from postock.utils.time import utcnow


@dataclass
class AllocationResult:
    po_id: int
    po_number: str
    line_no: int
    part_number: str
    qty: int
    line_quantity: int
    line_allocated: int
    position_total: int
    position_allocated: int
    movement_id: int

    @property
    def available(self) -> int:
        return self.position_total - self.position_allocated

    @property
    def line_remaining(self) -> int:
        return self.line_quantity - self.line_allocated


def matching_lines(po: PurchaseOrder, part_number: str) -> List[PurchaseOrderLine]:
    return [ln for ln in po.lines if ln.matches_part(part_number)]


def pick_line(
    po: PurchaseOrder,
    part_number: str,
    *,
    line_no: Optional[int] = None,
    prefer: str = "remaining",
) -> PurchaseOrderLine:
    """
    定位目标行：
    - 指定 line_no：该行且料号必须匹配；
    - 未指定：prefer="remaining" 取第一条仍有缺口的匹配行，
      prefer="allocated" 取第一条有预留的匹配行；都没有时取第一条匹配行。
    """
    hits = matching_lines(po, part_number)
    if line_no is not None:
        hits = [ln for ln in hits if ln.line_no == line_no]
        if not hits:
            raise UnknownLineItem(po.id, part_number=part_number, line_no=line_no)
        return hits[0]
    if not hits:
        raise UnknownLineItem(po.id, part_number=part_number)

    if prefer == "allocated":
        preferred = [ln for ln in hits if int(ln.allocated_qty) > 0]
    else:
        preferred = [ln for ln in hits if ln.remaining_qty > 0]
    return preferred[0] if preferred else hits[0]


async def allocate(
    session: AsyncSession,
    *,
    po_id: int,
    part_number: str,
    qty: int,
    line_no: Optional[int] = None,
) -> AllocationResult:
    require_positive_qty(qty)

    po = await require_po(session, po_id, for_update=True)
    if po.is_cancelled:
        raise OrderCancelled(po_id)
    line = pick_line(po, part_number, line_no=line_no, prefer="remaining")

    pos = await require_position(session, part_number, for_update=True)
    if qty > pos.available:
        raise InsufficientAvailable(pos.part_number, requested=qty, available=pos.available)
    if int(line.allocated_qty) + qty > int(line.quantity):
        raise OverAllocation(po_id, line.line_no, requested=qty, remaining=line.remaining_qty)

    pos.allocated_qty = int(pos.allocated_qty) + qty
    line.allocated_qty = int(line.allocated_qty) + qty
    po.updated_at = utcnow()
    mv = await write_movement(
        session,
        position=pos,
        type=MovementType.ALLOCATION,
        quantity=qty,
        reference_id=po.id,
        remarks=f"PO {po.po_number} line {line.line_no}",
    )

    return AllocationResult(
        po_id=po.id,
        po_number=po.po_number,
        line_no=line.line_no,
        part_number=pos.part_number,
        qty=qty,
        line_quantity=int(line.quantity),
        line_allocated=int(line.allocated_qty),
        position_total=int(pos.total_qty),
        position_allocated=int(pos.allocated_qty),
        movement_id=mv.id,
    )


async def deallocate(
    session: AsyncSession,
    *,
    po_id: int,
    part_number: str,
    qty: int,
    line_no: Optional[int] = None,
) -> AllocationResult:
    """释放预留：已取消的订单也允许释放（取消后手工归还库存的唯一途径）。"""
    require_positive_qty(qty)

    po = await require_po(session, po_id, for_update=True)
    line = pick_line(po, part_number, line_no=line_no, prefer="allocated")
    if qty > int(line.allocated_qty):
        raise OverDeallocation(po_id, line.line_no, requested=qty, allocated=int(line.allocated_qty))

    pos = await require_position(session, part_number, for_update=True)
    # 清库后头寸可能已重建，预留量不足以释放时拒绝
    if qty > int(pos.allocated_qty):
        raise OverDeallocation(po_id, line.line_no, requested=qty, allocated=int(pos.allocated_qty))

    pos.allocated_qty = int(pos.allocated_qty) - qty
    line.allocated_qty = int(line.allocated_qty) - qty
    po.updated_at = utcnow()
    mv = await write_movement(
        session,
        position=pos,
        type=MovementType.DEALLOCATION,
        quantity=qty,
        reference_id=po.id,
        remarks=f"PO {po.po_number} line {line.line_no}",
    )

    return AllocationResult(
        po_id=po.id,
        po_number=po.po_number,
        line_no=line.line_no,
        part_number=pos.part_number,
        qty=qty,
        line_quantity=int(line.quantity),
        line_allocated=int(line.allocated_qty),
        position_total=int(pos.total_qty),
        position_allocated=int(pos.allocated_qty),
        movement_id=mv.id,
    )
