# postock/api/problem.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, TypedDict

from fastapi import HTTPException


class ProblemDetail(TypedDict, total=False):
    # 必填
    type: str  # validation|state|shortage|batch
    # 可选：用于行内定位
    path: str  # e.g. rows[3]
    reason: str
    row_no: int
    part_number: str
    requested: int
    available: int


@dataclass(frozen=True)
class Problem:
    error_code: str
    message: str
    http_status: int
    context: Optional[Dict[str, Any]] = None
    details: Optional[List[ProblemDetail]] = None
    trace_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "http_status": int(self.http_status),
        }
        if self.context:
            out["context"] = self.context
        if self.details:
            out["details"] = self.details
        if self.trace_id:
            out["trace_id"] = self.trace_id
        return out


def make_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
    trace_id: Optional[str] = None,
) -> Dict[str, Any]:
    p = Problem(
        error_code=str(error_code),
        message=str(message),
        http_status=int(status_code),
        context=context,
        details=list(details) if details else None,
        trace_id=trace_id,
    )
    return p.to_dict()


def raise_problem(
    *,
    status_code: int,
    error_code: str,
    message: str,
    context: Optional[Dict[str, Any]] = None,
    details: Optional[Sequence[ProblemDetail]] = None,
) -> None:
    raise HTTPException(
        status_code=int(status_code),
        detail=make_problem(
            status_code=int(status_code),
            error_code=error_code,
            message=message,
            context=context,
            details=details,
        ),
    )


def raise_409(error_code: str, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
    raise_problem(status_code=409, error_code=error_code, message=message, context=context)


def require_confirmation(confirmed: bool, *, action: str, context: Optional[Dict[str, Any]] = None) -> None:
    """状态变更 / 破坏性操作必须由调用方显式确认（confirmed=true）。"""
    if not confirmed:
        raise_409(
            "confirmation_required",
            f"{action} requires confirmed=true",
            context=context,
        )
