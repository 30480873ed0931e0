# postock/models/purchase_order.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from postock.db.base import Base
from postock.models.enums import OrderStatus
from postock.utils.time import utcnow

if TYPE_CHECKING:
    from postock.models.purchase_order_line import PurchaseOrderLine


class PurchaseOrder(Base):
    """
    客户采购单头表。

    说明：
    - status 由行状态派生（Cancelled 除外），与行变更在同一事务内重算；
    - order_status / fulfillment_status 是人工维护的业务标签，引擎不派生；
    - 金额以行表为事实来源（total_value = Σ quantity × rate）；
    - version 为乐观锁计数器。
    """

    __tablename__ = "purchase_orders"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)

    po_number: Mapped[str] = mapped_column(sa.String(64), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(sa.String(255), nullable=False, default="")
    po_date: Mapped[Optional[date]] = mapped_column(sa.Date, nullable=True)

    # 分支
    main_branch: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True, index=True)
    sub_branch: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True)

    # 派生状态
    status: Mapped[str] = mapped_column(
        sa.String(32),
        nullable=False,
        default=OrderStatus.OPEN.value,
    )

    # 人工标签
    order_status: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    fulfillment_status: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)

    # 销售单 / 付款
    sales_order_number: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    so_date: Mapped[Optional[date]] = mapped_column(sa.Date, nullable=True)
    sale_type: Mapped[Optional[str]] = mapped_column(sa.String(16), nullable=True)
    payment_status: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    credit_terms: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)

    # 地址 / 税号
    billing_address: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    bill_to_gstin: Mapped[Optional[str]] = mapped_column(sa.String(32), nullable=True)
    shipping_address: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    ship_to_gstin: Mapped[Optional[str]] = mapped_column(sa.String(32), nullable=True)
    quote_number: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)

    # 备注 / 开票
    general_remarks: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    dispatch_remarks: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    invoice_number: Mapped[Optional[str]] = mapped_column(sa.String(64), nullable=True)
    invoice_date: Mapped[Optional[date]] = mapped_column(sa.Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)

    lines: Mapped[List["PurchaseOrderLine"]] = relationship(
        "PurchaseOrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderLine.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        sa.Index("ix_purchase_orders_branch", "main_branch", "sub_branch"),
    )

    @property
    def total_value(self) -> Decimal:
        total = Decimal("0")
        for ln in self.lines:
            total += Decimal(int(ln.quantity or 0)) * Decimal(ln.rate or 0)
        return total

    @property
    def is_cancelled(self) -> bool:
        return self.status == OrderStatus.CANCELLED

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} po_number={self.po_number!r} status={self.status}>"
