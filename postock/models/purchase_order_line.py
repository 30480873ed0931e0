# postock/models/purchase_order_line.py
from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from postock.db.base import Base
from postock.models.enums import LineItemStatus

if TYPE_CHECKING:
    from .purchase_order import PurchaseOrder


class PurchaseOrderLine(Base):
    __tablename__ = "purchase_order_lines"
    __table_args__ = (
        sa.UniqueConstraint(
            "po_id",
            "line_no",
            name="uq_purchase_order_lines_po_id_line_no",
        ),
        sa.CheckConstraint("quantity >= 0", name="ck_po_lines_qty_nonneg"),
        sa.CheckConstraint("allocated_qty >= 0", name="ck_po_lines_allocated_nonneg"),
        sa.CheckConstraint("allocated_qty <= quantity", name="ck_po_lines_allocated_le_qty"),
    )

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    po_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    # 与库存匹配时去空白、忽略大小写
    part_number: Mapped[str] = mapped_column(sa.String(128), nullable=False, index=True)
    item_desc: Mapped[Optional[str]] = mapped_column(sa.String(512), nullable=True)
    item_type: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)

    quantity: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    rate: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(12, 2), nullable=True)
    gst: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(6, 2), nullable=True)

    status: Mapped[str] = mapped_column(
        sa.String(32),
        nullable=False,
        default=LineItemStatus.NOT_AVAILABLE.value,
    )

    allocated_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    delivery_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    invoiced_qty: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    # Order Acknowledgement
    oa_no: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    oa_date: Mapped[Optional[date]] = mapped_column(sa.Date, nullable=True)
    item_remarks: Mapped[Optional[str]] = mapped_column(sa.String(512), nullable=True)

    order: Mapped["PurchaseOrder"] = relationship("PurchaseOrder", back_populates="lines")

    @property
    def remaining_qty(self) -> int:
        return int(self.quantity or 0) - int(self.allocated_qty or 0)

    def matches_part(self, part_number: str) -> bool:
        return (self.part_number or "").strip().lower() == (part_number or "").strip().lower()

    def __repr__(self) -> str:
        return (
            f"<POLine po={self.po_id} #{self.line_no} part={self.part_number} "
            f"qty={self.quantity} alloc={self.allocated_qty} status={self.status}>"
        )
