# postock/models/notification.py
from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from postock.db.base import Base
from postock.utils.time import utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    po_id: Mapped[int] = mapped_column(sa.Integer, nullable=False, index=True)
    message: Mapped[str] = mapped_column(sa.String(1024), nullable=False)
    read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return f"<Notification po={self.po_id} read={self.read} msg={self.message!r}>"
