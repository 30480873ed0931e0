# postock/services/ledger_writer.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import MovementType
from postock.models.stock_movement import StockMovement
from postock.models.stock_position import StockPosition
from postock.utils.time import utcnow


async def write_movement(
    session: AsyncSession,
    *,
    position: StockPosition,
    type: MovementType,
    quantity: int,
    reference_id: Optional[int] = None,
    remarks: Optional[str] = None,
    occurred_at: Optional[datetime] = None,
) -> StockMovement:
    """
    追加一条库存流水（与头寸变更同一事务）：

    - quantity 恒为正，方向由 type 决定；
    - 不做幂等去重：每次调用对应一次真实的头寸变更。
    """
    if quantity <= 0:
        raise ValueError(f"movement quantity must be > 0, got {quantity}")

    mv = StockMovement(
        part_number=position.part_number,
        part_key=position.part_key,
        type=MovementType(type).value,
        quantity=int(quantity),
        reference_id=reference_id,
        remarks=remarks,
        occurred_at=occurred_at or utcnow(),
    )
    session.add(mv)
    await session.flush()
    return mv
