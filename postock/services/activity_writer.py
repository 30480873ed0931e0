# postock/services/activity_writer.py
"""
操作日志 / 通知写入（侧通道）。

- 每个成功的引擎操作在同一事务内恰好调用一次 emitter.emit(...)；
- PO 相关事件：写一条 po_logs + 一条 notifications；
- 纯库存事件（po_id 为空）：只写一条 po_logs（带料号）。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.notification import Notification
from postock.models.po_log import PoLog

log = logging.getLogger("postock.activity")


@dataclass(frozen=True)
class ActivityEvent:
    op: str
    action: str
    po_id: Optional[int] = None
    part_number: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def for_order(cls, op: str, po_id: int, action: str, *, message: Optional[str] = None) -> "ActivityEvent":
        return cls(op=op, action=action, po_id=po_id, message=message or action)

    @classmethod
    def for_part(cls, op: str, part_number: Optional[str], action: str) -> "ActivityEvent":
        return cls(op=op, action=action, part_number=part_number)


class ActivityEmitter(Protocol):
    async def emit(self, session: AsyncSession, event: ActivityEvent) -> None: ...


class DbActivityEmitter:
    """默认实现：落 po_logs / notifications 表。"""

    async def emit(self, session: AsyncSession, event: ActivityEvent) -> None:
        session.add(PoLog(po_id=event.po_id, part_number=event.part_number, action=event.action))
        if event.po_id is not None and event.message:
            session.add(Notification(po_id=event.po_id, message=event.message, read=False))
        await session.flush()
        log.info("activity op=%s po=%s part=%s %s", event.op, event.po_id, event.part_number, event.action)


async def list_logs(
    session: AsyncSession,
    *,
    po_id: Optional[int] = None,
    limit: int = 200,
) -> List[PoLog]:
    stmt = select(PoLog).order_by(PoLog.created_at.desc(), PoLog.id.desc())
    if po_id is not None:
        stmt = stmt.where(PoLog.po_id == po_id)
    return list((await session.execute(stmt.limit(limit))).scalars().all())


async def list_notifications(
    session: AsyncSession,
    *,
    unread_only: bool = False,
    limit: int = 200,
) -> List[Notification]:
    stmt = select(Notification).order_by(Notification.created_at.desc(), Notification.id.desc())
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    return list((await session.execute(stmt.limit(limit))).scalars().all())


async def mark_all_read(session: AsyncSession) -> int:
    res = await session.execute(
        update(Notification).where(Notification.read.is_(False)).values(read=True)
    )
    return int(res.rowcount or 0)
