# postock/services/ledger_replay_service.py
"""
库存流水回放 / 对账。

从空状态按 (occurred_at, id) 顺序折叠 stock_movements，重建每个料号的
(total, allocated)，再与 stock_positions 逐一比对：

    INWARD            total += q
    OUTWARD_WALKING   total -= q
    ALLOCATION        allocated += q
    DEALLOCATION      allocated -= q
    TRANSFER          不影响数量
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from postock.models.enums import MovementType
from postock.models.stock_movement import StockMovement
from postock.models.stock_position import StockPosition, part_key
from postock.services.errors import LedgerInconsistency

# type -> (Δtotal 符号, Δallocated 符号)
MOVEMENT_EFFECT: Dict[str, tuple[int, int]] = {
    MovementType.INWARD.value: (1, 0),
    MovementType.OUTWARD_WALKING.value: (-1, 0),
    MovementType.ALLOCATION.value: (0, 1),
    MovementType.DEALLOCATION.value: (0, -1),
    MovementType.TRANSFER.value: (0, 0),
}


@dataclass
class ReplayedPosition:
    part_key: str
    part_number: str
    total_qty: int = 0
    allocated_qty: int = 0
    movements: int = 0


class LedgerReplayService:
    @staticmethod
    async def replay(
        session: AsyncSession,
        *,
        part_number: Optional[str] = None,
    ) -> Dict[str, ReplayedPosition]:
        stmt = select(StockMovement).order_by(StockMovement.occurred_at.asc(), StockMovement.id.asc())
        if part_number is not None:
            stmt = stmt.where(StockMovement.part_key == part_key(part_number))

        state: Dict[str, ReplayedPosition] = {}
        for mv in (await session.execute(stmt)).scalars():
            dt, da = MOVEMENT_EFFECT[mv.type]
            cur = state.get(mv.part_key)
            if cur is None:
                cur = ReplayedPosition(part_key=mv.part_key, part_number=mv.part_number)
                state[mv.part_key] = cur
            cur.total_qty += dt * int(mv.quantity)
            cur.allocated_qty += da * int(mv.quantity)
            cur.movements += 1
        return state

    @staticmethod
    async def reconcile(session: AsyncSession) -> List[Dict[str, Any]]:
        """
        返回不一致列表；空列表表示流水与头寸完全一致。
        没有任何流水的 0/0 头寸视为一致（注册时 initial_qty=0）。
        """
        replayed = await LedgerReplayService.replay(session)
        positions = {
            p.part_key: p for p in (await session.execute(select(StockPosition))).scalars()
        }

        mismatches: List[Dict[str, Any]] = []
        for key in sorted(set(replayed) | set(positions)):
            r = replayed.get(key)
            p = positions.get(key)
            exp_total = r.total_qty if r else 0
            exp_alloc = r.allocated_qty if r else 0
            if p is None:
                mismatches.append(
                    {
                        "part_key": key,
                        "problem": "missing_position",
                        "expected_total": exp_total,
                        "expected_allocated": exp_alloc,
                    }
                )
                continue
            if int(p.total_qty) != exp_total or int(p.allocated_qty) != exp_alloc:
                mismatches.append(
                    {
                        "part_key": key,
                        "problem": "mismatch",
                        "expected_total": exp_total,
                        "expected_allocated": exp_alloc,
                        "actual_total": int(p.total_qty),
                        "actual_allocated": int(p.allocated_qty),
                    }
                )
        return mismatches

    @staticmethod
    async def assert_consistent(session: AsyncSession) -> None:
        mismatches = await LedgerReplayService.reconcile(session)
        if mismatches:
            raise LedgerInconsistency(mismatches)
