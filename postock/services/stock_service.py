# postock/services/stock_service.py
"""
库存头寸服务（共享物理库存池）。

- 所有写操作在调用方事务内执行（本层不 commit），先校验后写入；
- 每次头寸变更恰好追加一条 StockMovement；
- 写前以 FOR UPDATE 读取头寸（PG 行锁；sqlite 下退化为普通读，靠 version 校验兜底）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import MovementType
from postock.models.stock_movement import StockMovement
from postock.models.stock_position import StockPosition, part_key
from postock.services.errors import (
    DuplicatePart,
    InsufficientAvailable,
    InvalidQuantity,
    MalformedImportRow,
    UnknownPart,
    ValidationError,
)
from postock.services.ledger_writer import write_movement

log = logging.getLogger("postock.stock")


def require_positive_qty(qty: Any, *, field: str = "qty") -> int:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise InvalidQuantity(qty, field=field)
    return qty


def _require_part_number(part_number: Optional[str]) -> str:
    pn = (part_number or "").strip()
    if not pn:
        raise ValidationError("part_number must not be blank", code="blank_part_number")
    return pn


# ---------------------------------------------------------------------------
# 查询
# ---------------------------------------------------------------------------


async def load_position(
    session: AsyncSession,
    part_number: str,
    *,
    for_update: bool = False,
) -> Optional[StockPosition]:
    stmt = select(StockPosition).where(StockPosition.part_key == part_key(part_number))
    if for_update:
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalars().first()


async def require_position(
    session: AsyncSession,
    part_number: str,
    *,
    for_update: bool = False,
) -> StockPosition:
    pos = await load_position(session, part_number, for_update=for_update)
    if pos is None:
        raise UnknownPart(part_number)
    return pos


async def list_positions(
    session: AsyncSession,
    *,
    search: Optional[str] = None,
    skip: int = 0,
    limit: Optional[int] = None,
) -> List[StockPosition]:
    stmt = select(StockPosition).order_by(StockPosition.part_key.asc())
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(
            or_(StockPosition.part_number.ilike(like), StockPosition.description.ilike(like))
        )
    if skip:
        stmt = stmt.offset(skip)
    if limit is not None:
        stmt = stmt.limit(limit)
    return list((await session.execute(stmt)).scalars().all())


async def part_history(session: AsyncSession, part_number: str) -> List[StockMovement]:
    """单料号流水，最新在前。"""
    stmt = (
        select(StockMovement)
        .where(StockMovement.part_key == part_key(part_number))
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


# ---------------------------------------------------------------------------
# 写操作
# ---------------------------------------------------------------------------


async def register_part(
    session: AsyncSession,
    *,
    part_number: str,
    description: Optional[str] = None,
    initial_qty: int = 0,
) -> StockPosition:
    pn = _require_part_number(part_number)
    if isinstance(initial_qty, bool) or not isinstance(initial_qty, int) or initial_qty < 0:
        raise InvalidQuantity(initial_qty, field="initial_qty")

    if await load_position(session, pn) is not None:
        raise DuplicatePart(pn)

    pos = StockPosition(
        part_number=pn,
        part_key=part_key(pn),
        description=(description or "").strip() or None,
        total_qty=int(initial_qty),
        allocated_qty=0,
    )
    session.add(pos)
    try:
        await session.flush()
    except IntegrityError as e:
        # 并发注册同一料号：唯一约束兜底
        raise DuplicatePart(pn) from e

    if initial_qty > 0:
        await write_movement(
            session,
            position=pos,
            type=MovementType.INWARD,
            quantity=initial_qty,
            remarks="initial stock",
        )
    return pos


async def inward(
    session: AsyncSession,
    *,
    part_number: str,
    qty: int,
    remark: Optional[str] = None,
) -> StockPosition:
    require_positive_qty(qty)
    pos = await require_position(session, part_number, for_update=True)

    pos.total_qty = int(pos.total_qty) + qty
    await write_movement(session, position=pos, type=MovementType.INWARD, quantity=qty, remarks=remark)
    return pos


async def walking_sale(
    session: AsyncSession,
    *,
    part_number: str,
    qty: int,
    remark: Optional[str] = None,
) -> StockPosition:
    """门店散售：只能卖未预留的部分。"""
    require_positive_qty(qty)
    pos = await require_position(session, part_number, for_update=True)

    if qty > pos.available:
        raise InsufficientAvailable(pos.part_number, requested=qty, available=pos.available)

    pos.total_qty = int(pos.total_qty) - qty
    await write_movement(
        session, position=pos, type=MovementType.OUTWARD_WALKING, quantity=qty, remarks=remark
    )
    return pos


# ---------------------------------------------------------------------------
# 批量上传
# ---------------------------------------------------------------------------


@dataclass
class StockUploadRow:
    row_no: int
    part_number: str
    quantity: int
    description: Optional[str] = None


@dataclass
class BulkUploadResult:
    registered: List[str] = field(default_factory=list)
    replenished: List[str] = field(default_factory=list)
    skipped: List[MalformedImportRow] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return len(self.registered) + len(self.replenished)


def _parse_row_qty(raw: Any) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    text = str(raw if raw is not None else "").strip().replace(",", "")
    if not text:
        return None
    try:
        val = float(text)
    except ValueError:
        return None
    return int(val) if val.is_integer() else None


def normalize_upload_rows(
    rows: Iterable[Dict[str, Any]],
    *,
    first_row_no: int = 1,
) -> tuple[List[StockUploadRow], List[MalformedImportRow]]:
    """
    校验上传行：料号为空、数量非整数或为负的行跳过并记录，不影响其余行。
    数量为 0 的行视为合法（已有料号不产生流水，新料号以 0 注册）。
    """
    valid: List[StockUploadRow] = []
    skipped: List[MalformedImportRow] = []
    for i, row in enumerate(rows):
        row_no = first_row_no + i
        pn = str(row.get("part_number") or "").strip()
        if not pn:
            skipped.append(MalformedImportRow(row_no, "missing part number"))
            continue
        qty = _parse_row_qty(row.get("quantity"))
        if qty is None:
            skipped.append(MalformedImportRow(row_no, f"quantity {row.get('quantity')!r} is not an integer"))
            continue
        if qty < 0:
            skipped.append(MalformedImportRow(row_no, f"quantity {qty} is negative"))
            continue
        desc = str(row.get("description") or "").strip() or None
        valid.append(StockUploadRow(row_no=row_no, part_number=pn, quantity=qty, description=desc))
    return valid, skipped


async def bulk_upload(
    session: AsyncSession,
    rows: Sequence[StockUploadRow],
) -> BulkUploadResult:
    """
    批量入库：已有料号按 inward 处理，新料号按 register 处理；
    所有合法行在调用方的同一事务内写入。
    """
    result = BulkUploadResult()
    for row in rows:
        pos = await load_position(session, row.part_number, for_update=True)
        if pos is None:
            await register_part(
                session,
                part_number=row.part_number,
                description=row.description,
                initial_qty=row.quantity,
            )
            result.registered.append(row.part_number)
            continue

        if row.description and not pos.description:
            pos.description = row.description
        if row.quantity > 0:
            pos.total_qty = int(pos.total_qty) + row.quantity
            await write_movement(
                session,
                position=pos,
                type=MovementType.INWARD,
                quantity=row.quantity,
                remarks="bulk upload",
            )
        result.replenished.append(row.part_number)
    return result
