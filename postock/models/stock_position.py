# postock/models/stock_position.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from postock.db.base import Base
from postock.utils.time import utcnow


def part_key(part_number: str) -> str:
    """料号归一：去首尾空白 + 大写，作为唯一键与匹配键。"""
    return (part_number or "").strip().upper()


class StockPosition(Base):
    """
    单料号库存头寸（共享物理库存池）。

    - total_qty：在库总量
    - allocated_qty：已为 PO 预留的数量
    - available = total_qty − allocated_qty（不落库）
    - version：乐观锁计数器，ORM 每次 UPDATE 自动校验并 +1
    """

    __tablename__ = "stock_positions"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    part_number: Mapped[str] = mapped_column(sa.String(128), nullable=False)
    part_key: Mapped[str] = mapped_column(sa.String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.String(512), nullable=True)

    total_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    allocated_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        sa.UniqueConstraint("part_key", name="uq_stock_positions_part_key"),
        sa.CheckConstraint("total_qty >= 0", name="ck_stock_positions_total_nonneg"),
        sa.CheckConstraint("allocated_qty >= 0", name="ck_stock_positions_allocated_nonneg"),
        sa.CheckConstraint(
            "allocated_qty <= total_qty", name="ck_stock_positions_allocated_le_total"
        ),
    )

    @property
    def available(self) -> int:
        return int(self.total_qty or 0) - int(self.allocated_qty or 0)

    def __repr__(self) -> str:
        return (
            f"<StockPosition part={self.part_key} total={self.total_qty} "
            f"allocated={self.allocated_qty} v={self.version}>"
        )
