"""initial schema: stock positions / movements, purchase orders, logs, notifications

Revision ID: a1c3e5f70001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f70001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "stock_positions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("part_number", sa.String(length=128), nullable=False),
        sa.Column("part_key", sa.String(length=128), nullable=False),
        sa.Column("description", sa.String(length=512), nullable=True),
        sa.Column("total_qty", sa.Integer(), nullable=False),
        sa.Column("allocated_qty", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.UniqueConstraint("part_key", name="uq_stock_positions_part_key"),
        sa.CheckConstraint("total_qty >= 0", name="ck_stock_positions_total_nonneg"),
        sa.CheckConstraint("allocated_qty >= 0", name="ck_stock_positions_allocated_nonneg"),
        sa.CheckConstraint("allocated_qty <= total_qty", name="ck_stock_positions_allocated_le_total"),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("part_number", sa.String(length=128), nullable=False),
        sa.Column("part_key", sa.String(length=128), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("remarks", sa.String(length=512), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_stock_movements_qty_pos"),
    )
    op.create_index("ix_stock_movements_part_key", "stock_movements", ["part_key"])
    op.create_index("ix_stock_movements_reference_id", "stock_movements", ["reference_id"])
    op.create_index("ix_stock_movements_part_time", "stock_movements", ["part_key", "occurred_at"])

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("po_number", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.String(length=255), nullable=False),
        sa.Column("po_date", sa.Date(), nullable=True),
        sa.Column("main_branch", sa.String(length=128), nullable=True),
        sa.Column("sub_branch", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("order_status", sa.String(length=64), nullable=True),
        sa.Column("fulfillment_status", sa.String(length=64), nullable=True),
        sa.Column("sales_order_number", sa.String(length=64), nullable=True),
        sa.Column("so_date", sa.Date(), nullable=True),
        sa.Column("sale_type", sa.String(length=16), nullable=True),
        sa.Column("payment_status", sa.String(length=64), nullable=True),
        sa.Column("credit_terms", sa.String(length=64), nullable=True),
        sa.Column("billing_address", sa.Text(), nullable=True),
        sa.Column("bill_to_gstin", sa.String(length=32), nullable=True),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("ship_to_gstin", sa.String(length=32), nullable=True),
        sa.Column("quote_number", sa.String(length=64), nullable=True),
        sa.Column("general_remarks", sa.Text(), nullable=True),
        sa.Column("dispatch_remarks", sa.Text(), nullable=True),
        sa.Column("invoice_number", sa.String(length=64), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
    )
    op.create_index("ix_purchase_orders_po_number", "purchase_orders", ["po_number"])
    op.create_index("ix_purchase_orders_main_branch", "purchase_orders", ["main_branch"])
    op.create_index("ix_purchase_orders_branch", "purchase_orders", ["main_branch", "sub_branch"])

    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "po_id",
            sa.Integer(),
            sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("part_number", sa.String(length=128), nullable=False),
        sa.Column("item_desc", sa.String(length=512), nullable=True),
        sa.Column("item_type", sa.String(length=64), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount", sa.Numeric(12, 2), nullable=True),
        sa.Column("gst", sa.Numeric(6, 2), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("allocated_qty", sa.Integer(), nullable=False),
        sa.Column("delivery_qty", sa.Integer(), nullable=False),
        sa.Column("invoiced_qty", sa.Integer(), nullable=False),
        sa.Column("oa_no", sa.String(length=64), nullable=True),
        sa.Column("oa_date", sa.Date(), nullable=True),
        sa.Column("item_remarks", sa.String(length=512), nullable=True),
        sa.UniqueConstraint("po_id", "line_no", name="uq_purchase_order_lines_po_id_line_no"),
        sa.CheckConstraint("quantity >= 0", name="ck_po_lines_qty_nonneg"),
        sa.CheckConstraint("allocated_qty >= 0", name="ck_po_lines_allocated_nonneg"),
        sa.CheckConstraint("allocated_qty <= quantity", name="ck_po_lines_allocated_le_qty"),
    )
    op.create_index("ix_purchase_order_lines_po_id", "purchase_order_lines", ["po_id"])
    op.create_index("ix_purchase_order_lines_part_number", "purchase_order_lines", ["part_number"])

    op.create_table(
        "po_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("po_id", sa.Integer(), nullable=True),
        sa.Column("part_number", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=1024), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_po_logs_po_id", "po_logs", ["po_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("po_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(length=1024), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_po_id", "notifications", ["po_id"])


def downgrade() -> None:
    op.drop_index("ix_notifications_po_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_po_logs_po_id", table_name="po_logs")
    op.drop_table("po_logs")
    op.drop_index("ix_purchase_order_lines_part_number", table_name="purchase_order_lines")
    op.drop_index("ix_purchase_order_lines_po_id", table_name="purchase_order_lines")
    op.drop_table("purchase_order_lines")
    op.drop_index("ix_purchase_orders_branch", table_name="purchase_orders")
    op.drop_index("ix_purchase_orders_main_branch", table_name="purchase_orders")
    op.drop_index("ix_purchase_orders_po_number", table_name="purchase_orders")
    op.drop_table("purchase_orders")
    op.drop_index("ix_stock_movements_part_time", table_name="stock_movements")
    op.drop_index("ix_stock_movements_reference_id", table_name="stock_movements")
    op.drop_index("ix_stock_movements_part_key", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("stock_positions")
