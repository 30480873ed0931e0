# postock/api/routers/purchase_orders_routes.py
from __future__ import annotations

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from postock.api.deps import get_engine
from postock.api.problem import require_confirmation
from postock.api.routers._csv import csv_response, is_csv_request, read_text_body
from postock.db.session import get_session
from postock.schemas.purchase_order import (
    AllocationIn,
    AllocationOut,
    CancelIn,
    DeleteOut,
    ImportOut,
    ItemStatusIn,
    MissingOaOut,
    PoLogOut,
    PurchaseOrderCreate,
    PurchaseOrderLineOut,
    PurchaseOrderLinePatch,
    PurchaseOrderOut,
    PurchaseOrderPatch,
)
from postock.schemas.stock import SkippedRowOut
from postock.services.activity_writer import list_logs
from postock.services.allocation_engine import AllocationEngine
from postock.services.csv_export import export_orders_csv, order_import_template_csv
from postock.services.errors import UnknownOrder
from postock.services.purchase_order_queries import (
    dispatch_pending_report,
    get_po_with_lines,
    list_pos,
    missing_oa_report,
)


async def _load_out(session: AsyncSession, po_id: int) -> PurchaseOrderOut:
    po = await get_po_with_lines(session, po_id)
    if po is None:
        raise UnknownOrder(po_id)
    return PurchaseOrderOut.model_validate(po)


def register(router: APIRouter) -> None:
    # ---- 静态路径（必须先于 /{po_id}） ----

    @router.get("/export.csv")
    async def export_orders(
        status_: Optional[str] = Query(None, alias="status"),
        main_branch: Optional[str] = Query(None),
        session: AsyncSession = Depends(get_session),
    ):
        rows = await list_pos(session, limit=None, status=status_, main_branch=main_branch)
        return csv_response(export_orders_csv(rows), f"purchase_orders_{date.today().isoformat()}.csv")

    @router.get("/template.csv")
    async def import_template():
        return csv_response(order_import_template_csv(), "po_bulk_upload_template.csv")

    @router.post("/import", response_model=ImportOut)
    async def import_orders(
        request: Request,
        engine: AllocationEngine = Depends(get_engine),
    ) -> ImportOut:
        if not is_csv_request(request):
            raise HTTPException(
                status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
                detail="import expects a text/csv body",
            )
        report = await engine.import_orders(await read_text_body(request))
        return ImportOut(
            created=report.created,
            skipped=[SkippedRowOut(row_no=s.row_no, reason=s.reason) for s in report.skipped],
        )

    @router.delete("/by-branch", response_model=DeleteOut)
    async def delete_by_branch(
        main_branch: str = Query(..., min_length=1),
        sub_branch: Optional[str] = Query(None),
        confirm: bool = Query(False),
        engine: AllocationEngine = Depends(get_engine),
    ) -> DeleteOut:
        require_confirmation(confirm, action="deleting all orders of a branch", context={"main_branch": main_branch})
        report = await engine.delete_orders_by_branch(main_branch, sub_branch)
        return DeleteOut(orders=report.orders, logs=report.logs, notifications=report.notifications)

    @router.get("/reports/missing-oa", response_model=List[MissingOaOut])
    async def report_missing_oa(
        session: AsyncSession = Depends(get_session),
    ) -> List[MissingOaOut]:
        rows = await missing_oa_report(session)
        return [
            MissingOaOut(
                po_id=r.po.id,
                po_number=r.po.po_number,
                customer_name=r.po.customer_name,
                fulfillment_status=r.po.fulfillment_status,
                lines=[PurchaseOrderLineOut.model_validate(ln) for ln in r.lines],
            )
            for r in rows
        ]

    @router.get("/reports/dispatch-pending", response_model=List[PurchaseOrderOut])
    async def report_dispatch_pending(
        session: AsyncSession = Depends(get_session),
    ) -> List[PurchaseOrderOut]:
        return [PurchaseOrderOut.model_validate(po) for po in await dispatch_pending_report(session)]

    # ---- 集合 ----

    @router.post("", response_model=PurchaseOrderOut, status_code=status.HTTP_201_CREATED)
    async def create_purchase_order(
        payload: PurchaseOrderCreate,
        engine: AllocationEngine = Depends(get_engine),
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        po = await engine.create_order(
            payload.model_dump(exclude={"lines"}, exclude_none=True),
            [line.model_dump() for line in payload.lines],
        )
        return await _load_out(session, po.id)

    @router.get("", response_model=List[PurchaseOrderOut])
    async def list_purchase_orders(
        status_: Optional[str] = Query(None, alias="status"),
        search: Optional[str] = Query(None, description="PO 号 / 客户名子串"),
        main_branch: Optional[str] = Query(None),
        sub_branch: Optional[str] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(100, ge=1, le=1000),
        session: AsyncSession = Depends(get_session),
    ) -> List[PurchaseOrderOut]:
        rows = await list_pos(
            session,
            skip=skip,
            limit=limit,
            status=status_,
            search=search,
            main_branch=main_branch,
            sub_branch=sub_branch,
        )
        return [PurchaseOrderOut.model_validate(po) for po in rows]

    # ---- 单据 ----

    @router.get("/{po_id}", response_model=PurchaseOrderOut)
    async def get_purchase_order(
        po_id: int,
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        return await _load_out(session, po_id)

    @router.patch("/{po_id}", response_model=PurchaseOrderOut)
    async def patch_purchase_order(
        po_id: int,
        payload: PurchaseOrderPatch,
        engine: AllocationEngine = Depends(get_engine),
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        await engine.update_order_header(po_id, payload.model_dump(exclude_unset=True))
        return await _load_out(session, po_id)

    @router.delete("/{po_id}", response_model=DeleteOut)
    async def delete_purchase_order(
        po_id: int,
        confirm: bool = Query(False),
        engine: AllocationEngine = Depends(get_engine),
    ) -> DeleteOut:
        require_confirmation(confirm, action="deleting an order", context={"po_id": po_id})
        report = await engine.delete_order(po_id)
        return DeleteOut(orders=report.orders, logs=report.logs, notifications=report.notifications)

    @router.patch("/{po_id}/lines/{line_no}", response_model=PurchaseOrderOut)
    async def patch_purchase_order_line(
        po_id: int,
        line_no: int,
        payload: PurchaseOrderLinePatch,
        engine: AllocationEngine = Depends(get_engine),
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        await engine.update_line(po_id, line_no, payload.model_dump(exclude_unset=True))
        return await _load_out(session, po_id)

    @router.post("/{po_id}/allocate", response_model=AllocationOut)
    async def allocate(
        po_id: int,
        payload: AllocationIn,
        engine: AllocationEngine = Depends(get_engine),
    ) -> AllocationOut:
        res = await engine.allocate(po_id, payload.part_number, payload.qty, line_no=payload.line_no)
        return AllocationOut.model_validate(res)

    @router.post("/{po_id}/deallocate", response_model=AllocationOut)
    async def deallocate(
        po_id: int,
        payload: AllocationIn,
        engine: AllocationEngine = Depends(get_engine),
    ) -> AllocationOut:
        res = await engine.deallocate(po_id, payload.part_number, payload.qty, line_no=payload.line_no)
        return AllocationOut.model_validate(res)

    @router.post("/{po_id}/item-status", response_model=PurchaseOrderOut)
    async def update_item_status(
        po_id: int,
        payload: ItemStatusIn,
        engine: AllocationEngine = Depends(get_engine),
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        require_confirmation(
            payload.confirmed,
            action=f"setting item status to {payload.status.value}",
            context={"po_id": po_id, "line_no": payload.line_no, "part_number": payload.part_number},
        )
        await engine.update_item_status(
            po_id, payload.status, line_no=payload.line_no, part_number=payload.part_number
        )
        return await _load_out(session, po_id)

    @router.post("/{po_id}/cancel", response_model=PurchaseOrderOut)
    async def cancel_purchase_order(
        po_id: int,
        payload: CancelIn,
        engine: AllocationEngine = Depends(get_engine),
        session: AsyncSession = Depends(get_session),
    ) -> PurchaseOrderOut:
        require_confirmation(payload.confirmed, action="cancelling an order", context={"po_id": po_id})
        await engine.cancel_order(po_id)
        return await _load_out(session, po_id)

    @router.get("/{po_id}/logs", response_model=List[PoLogOut])
    async def purchase_order_logs(
        po_id: int,
        limit: int = Query(200, ge=1, le=1000),
        session: AsyncSession = Depends(get_session),
    ) -> List[PoLogOut]:
        rows = await list_logs(session, po_id=po_id, limit=limit)
        return [PoLogOut.model_validate(r) for r in rows]
