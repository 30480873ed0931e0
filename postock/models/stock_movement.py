# postock/models/stock_movement.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from postock.db.base import Base
from postock.utils.time import utcnow


class StockMovement(Base):
    """
    库存流水（只追加）：

    每一次改变 StockPosition 的操作都恰好写一行；
    按 (occurred_at, id) 顺序回放可重建全部头寸。
    """

    __tablename__ = "stock_movements"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    part_number: Mapped[str] = mapped_column(sa.String(128), nullable=False)
    part_key: Mapped[str] = mapped_column(sa.String(128), nullable=False, index=True)

    type: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # ALLOCATION / DEALLOCATION 指向 purchase_orders.id（不建外键：PO 删除后流水保留）
    reference_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True, index=True)
    remarks: Mapped[Optional[str]] = mapped_column(sa.String(512), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_qty_pos"),
        sa.Index("ix_stock_movements_part_time", "part_key", "occurred_at"),
    )

    def __repr__(self) -> str:
        return f"<StockMovement {self.type} part={self.part_key} q={self.quantity} ref={self.reference_id}>"
