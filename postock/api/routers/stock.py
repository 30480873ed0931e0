# postock/api/routers/stock.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from postock.api.deps import get_engine
from postock.api.problem import require_confirmation
from postock.api.routers._csv import csv_response, is_csv_request, read_text_body
from postock.db.session import get_session
from postock.schemas.stock import (
    BulkUploadOut,
    CandidateOut,
    PartRegisterIn,
    ReconcileOut,
    SkippedRowOut,
    StockMovementOut,
    StockPositionOut,
    StockQtyIn,
    StockUploadIn,
    WipeOut,
)
from postock.services import stock_service
from postock.services.allocation_engine import AllocationEngine
from postock.services.csv_export import export_stock_csv, stock_template_csv
from postock.services.errors import UnknownPart
from postock.services.purchase_order_queries import allocation_candidates

router = APIRouter(prefix="/stock", tags=["stock"])


@router.post("/parts", response_model=StockPositionOut, status_code=status.HTTP_201_CREATED)
async def register_part(
    payload: PartRegisterIn,
    engine: AllocationEngine = Depends(get_engine),
) -> StockPositionOut:
    pos = await engine.register_part(
        payload.part_number, description=payload.description, initial_qty=payload.initial_qty
    )
    return StockPositionOut.model_validate(pos)


@router.get("", response_model=List[StockPositionOut])
async def list_positions(
    search: Optional[str] = Query(None, description="料号 / 描述子串"),
    skip: int = Query(0, ge=0),
    limit: int = Query(200, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
) -> List[StockPositionOut]:
    rows = await stock_service.list_positions(session, search=search, skip=skip, limit=limit)
    return [StockPositionOut.model_validate(p) for p in rows]


@router.post("/bulk-upload", response_model=BulkUploadOut)
async def bulk_upload(
    request: Request,
    engine: AllocationEngine = Depends(get_engine),
) -> BulkUploadOut:
    """JSON {"rows": [...]} 或 text/csv 正文（Part Number, Description, Quantity）。"""
    if is_csv_request(request):
        res = await engine.bulk_upload_csv(await read_text_body(request))
    else:
        try:
            payload = StockUploadIn.model_validate(await request.json())
        except PydanticValidationError as e:
            raise RequestValidationError(e.errors()) from e
        res = await engine.bulk_upload([r.model_dump() for r in payload.rows])

    return BulkUploadOut(
        registered=res.registered,
        replenished=res.replenished,
        skipped=[SkippedRowOut(row_no=s.row_no, reason=s.reason) for s in res.skipped],
    )


@router.delete("", response_model=WipeOut)
async def wipe_stock(
    confirm: bool = Query(False, description="必须为 true"),
    engine: AllocationEngine = Depends(get_engine),
) -> WipeOut:
    require_confirmation(confirm, action="wiping all stock")
    report = await engine.wipe_all()
    return WipeOut(positions=report.positions, movements=report.movements)


@router.get("/export.csv")
async def export_stock(session: AsyncSession = Depends(get_session)):
    rows = await stock_service.list_positions(session)
    return csv_response(export_stock_csv(rows), f"stock_{date.today().isoformat()}.csv")


@router.get("/template.csv")
async def stock_template():
    return csv_response(stock_template_csv(), "stock_upload_template.csv")


@router.get("/reconcile", response_model=ReconcileOut)
async def reconcile(engine: AllocationEngine = Depends(get_engine)) -> ReconcileOut:
    mismatches = await engine.reconcile()
    return ReconcileOut(consistent=not mismatches, mismatches=mismatches)


@router.get("/{part_number}", response_model=StockPositionOut)
async def get_position(
    part_number: str,
    session: AsyncSession = Depends(get_session),
) -> StockPositionOut:
    pos = await stock_service.load_position(session, part_number)
    if pos is None:
        raise UnknownPart(part_number)
    return StockPositionOut.model_validate(pos)


@router.get("/{part_number}/history", response_model=List[StockMovementOut])
async def part_history(
    part_number: str,
    session: AsyncSession = Depends(get_session),
) -> List[StockMovementOut]:
    if await stock_service.load_position(session, part_number) is None:
        raise UnknownPart(part_number)
    rows = await stock_service.part_history(session, part_number)
    return [StockMovementOut.model_validate(m) for m in rows]


@router.get("/{part_number}/candidates", response_model=List[CandidateOut])
async def candidates(
    part_number: str,
    search: Optional[str] = Query(None, description="PO 号 / 客户名子串"),
    session: AsyncSession = Depends(get_session),
) -> List[CandidateOut]:
    rows = await allocation_candidates(session, part_number, search=search)
    return [CandidateOut.model_validate(c) for c in rows]


@router.post("/{part_number}/inward", response_model=StockPositionOut)
async def inward(
    part_number: str,
    payload: StockQtyIn,
    engine: AllocationEngine = Depends(get_engine),
) -> StockPositionOut:
    pos = await engine.inward(part_number, payload.qty, remark=payload.remark)
    return StockPositionOut.model_validate(pos)


@router.post("/{part_number}/walking-sale", response_model=StockPositionOut)
async def walking_sale(
    part_number: str,
    payload: StockQtyIn,
    engine: AllocationEngine = Depends(get_engine),
) -> StockPositionOut:
    pos = await engine.walking_sale(part_number, payload.qty, remark=payload.remark)
    return StockPositionOut.model_validate(pos)
