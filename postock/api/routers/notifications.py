# postock/api/routers/notifications.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from postock.api.deps import get_engine
from postock.db.session import get_session
from postock.schemas.notification import MarkReadOut, NotificationOut
from postock.services.activity_writer import list_notifications
from postock.services.allocation_engine import AllocationEngine

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationOut])
async def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(200, ge=1, le=1000),
    session: AsyncSession = Depends(get_session),
) -> List[NotificationOut]:
    rows = await list_notifications(session, unread_only=unread_only, limit=limit)
    return [NotificationOut.model_validate(n) for n in rows]


@router.post("/mark-read", response_model=MarkReadOut)
async def mark_read(engine: AllocationEngine = Depends(get_engine)) -> MarkReadOut:
    return MarkReadOut(updated=await engine.mark_notifications_read())
