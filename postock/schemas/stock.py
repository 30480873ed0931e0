# postock/schemas/stock.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PartRegisterIn(BaseModel):
    part_number: str = Field(..., min_length=1, description="料号（匹配时去空白、忽略大小写）")
    description: Optional[str] = None
    initial_qty: int = Field(0, ge=0, description="初始在库数量")


class StockQtyIn(BaseModel):
    qty: int = Field(..., gt=0)
    remark: Optional[str] = None


class StockUploadRowIn(BaseModel):
    # 行级合法性由服务层判断（非法行跳过而不是整批 422）
    part_number: Optional[str] = None
    description: Optional[str] = None
    quantity: Any = None


class StockUploadIn(BaseModel):
    rows: List[StockUploadRowIn]


class StockPositionOut(BaseModel):
    part_number: str
    description: Optional[str] = None
    total_qty: int
    allocated_qty: int
    available: int
    updated_at: datetime
    version: int

    model_config = ConfigDict(from_attributes=True)


class StockMovementOut(BaseModel):
    id: int
    part_number: str
    type: str
    quantity: int
    reference_id: Optional[int] = None
    remarks: Optional[str] = None
    occurred_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SkippedRowOut(BaseModel):
    row_no: int
    reason: str


class BulkUploadOut(BaseModel):
    registered: List[str]
    replenished: List[str]
    skipped: List[SkippedRowOut]


class WipeOut(BaseModel):
    positions: int
    movements: int


class CandidateOut(BaseModel):
    po_id: int
    po_number: str
    customer_name: str
    line_no: int
    part_number: str
    quantity: int
    allocated_qty: int
    needed_qty: int

    model_config = ConfigDict(from_attributes=True)


class ReconcileOut(BaseModel):
    consistent: bool
    mismatches: List[Dict[str, Any]] = Field(default_factory=list)
