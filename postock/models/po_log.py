# postock/models/po_log.py
from __future__ import annotations

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from postock.db.base import Base
from postock.utils.time import utcnow


class PoLog(Base):
    """
    操作日志（侧通道）：

    - po_id 为空表示库存侧操作（入库 / 散售 / 清库等），此时 part_number 记录料号；
    - 不与 purchase_orders 建外键，删除 PO 时由批量删除流程显式清理。
    """

    __tablename__ = "po_logs"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    po_id: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True, index=True)
    part_number: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True)
    action: Mapped[str] = mapped_column(sa.String(1024), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<PoLog po={self.po_id} part={self.part_number} action={self.action!r}>"
