# postock/schemas/purchase_order.py
from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from postock.models.enums import FulfillmentLabel, LineItemStatus, OrderStage, SaleType
from postock.schemas.stock import SkippedRowOut

# ----- 行 -----


class PurchaseOrderLineCreate(BaseModel):
    part_number: str = Field(..., min_length=1, description="料号，对应 CSV 的 Item: Item Name")
    quantity: int = Field(..., ge=0)
    rate: Decimal = Field(Decimal("0"), ge=0, description="单价")
    item_desc: Optional[str] = None
    item_type: Optional[str] = None
    category: Optional[str] = None
    discount: Optional[Decimal] = Field(None, ge=0)
    gst: Optional[Decimal] = Field(None, ge=0, description="税率 %")
    oa_no: Optional[str] = None
    oa_date: Optional[date] = None
    item_remarks: Optional[str] = None


class PurchaseOrderLineOut(BaseModel):
    id: int
    po_id: int
    line_no: int
    part_number: str
    item_desc: Optional[str] = None
    item_type: Optional[str] = None
    category: Optional[str] = None
    quantity: int
    rate: Decimal
    discount: Optional[Decimal] = None
    gst: Optional[Decimal] = None
    status: str
    allocated_qty: int
    delivery_qty: int
    invoiced_qty: int
    oa_no: Optional[str] = None
    oa_date: Optional[date] = None
    item_remarks: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PurchaseOrderLinePatch(BaseModel):
    """
    行编辑：只提交需要修改的字段。
    allocated_qty / status 不在此处（分别走 allocate / item-status）。
    """

    quantity: Optional[int] = Field(None, ge=0)
    rate: Optional[Decimal] = Field(None, ge=0)
    discount: Optional[Decimal] = Field(None, ge=0)
    gst: Optional[Decimal] = Field(None, ge=0)
    item_desc: Optional[str] = None
    item_type: Optional[str] = None
    category: Optional[str] = None
    oa_no: Optional[str] = None
    oa_date: Optional[date] = None
    item_remarks: Optional[str] = None
    delivery_qty: Optional[int] = Field(None, ge=0)
    invoiced_qty: Optional[int] = Field(None, ge=0)

    model_config = ConfigDict(extra="forbid")


# ----- 头 -----


class PurchaseOrderHeaderFields(BaseModel):
    customer_name: Optional[str] = None
    po_date: Optional[date] = None
    main_branch: Optional[str] = None
    sub_branch: Optional[str] = None
    order_status: Optional[OrderStage] = None
    fulfillment_status: Optional[FulfillmentLabel] = None
    sales_order_number: Optional[str] = None
    so_date: Optional[date] = None
    sale_type: Optional[SaleType] = None
    payment_status: Optional[str] = None
    credit_terms: Optional[str] = None
    billing_address: Optional[str] = None
    bill_to_gstin: Optional[str] = None
    shipping_address: Optional[str] = None
    ship_to_gstin: Optional[str] = None
    quote_number: Optional[str] = None
    general_remarks: Optional[str] = None
    dispatch_remarks: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None


class PurchaseOrderCreate(PurchaseOrderHeaderFields):
    po_number: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    lines: List[PurchaseOrderLineCreate] = Field(..., min_length=1)


class PurchaseOrderPatch(PurchaseOrderHeaderFields):
    """只提交需要修改的字段；status 不在此处（由行状态派生）。"""

    po_number: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PurchaseOrderOut(BaseModel):
    id: int
    po_number: str
    customer_name: str
    po_date: Optional[date] = None
    main_branch: Optional[str] = None
    sub_branch: Optional[str] = None
    status: str
    order_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    sales_order_number: Optional[str] = None
    so_date: Optional[date] = None
    sale_type: Optional[str] = None
    payment_status: Optional[str] = None
    credit_terms: Optional[str] = None
    billing_address: Optional[str] = None
    bill_to_gstin: Optional[str] = None
    shipping_address: Optional[str] = None
    ship_to_gstin: Optional[str] = None
    quote_number: Optional[str] = None
    general_remarks: Optional[str] = None
    dispatch_remarks: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[date] = None
    total_value: Decimal
    version: int
    created_at: datetime
    updated_at: datetime

    lines: List[PurchaseOrderLineOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


# ----- 操作 -----


class AllocationIn(BaseModel):
    part_number: str = Field(..., min_length=1)
    qty: int = Field(..., gt=0)
    line_no: Optional[int] = Field(None, gt=0)


class AllocationOut(BaseModel):
    po_id: int
    po_number: str
    line_no: int
    part_number: str
    qty: int
    line_quantity: int
    line_allocated: int
    line_remaining: int
    position_total: int
    position_allocated: int
    available: int

    model_config = ConfigDict(from_attributes=True)


class ItemStatusIn(BaseModel):
    status: LineItemStatus
    line_no: Optional[int] = Field(None, gt=0)
    part_number: Optional[str] = None
    confirmed: bool = Field(False, description="状态变更需调用方确认")


class CancelIn(BaseModel):
    confirmed: bool = False


class ImportOut(BaseModel):
    created: List[Dict[str, Any]]
    skipped: List[SkippedRowOut]


class DeleteOut(BaseModel):
    orders: List[int]
    logs: int
    notifications: int


class PoLogOut(BaseModel):
    id: int
    po_id: Optional[int] = None
    part_number: Optional[str] = None
    action: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ----- 报表 -----


class MissingOaOut(BaseModel):
    po_id: int
    po_number: str
    customer_name: str
    fulfillment_status: Optional[str] = None
    lines: List[PurchaseOrderLineOut]
