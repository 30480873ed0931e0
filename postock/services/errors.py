# postock/services/errors.py
"""
引擎错误分类（与 HTTP Problem 形状一一对应）：

- ValidationError：请求违反业务前置条件，无任何写入；
- PersistenceError：存储层失败或并发写冲突，事务已回滚；
- LedgerInconsistency：流水回放与头寸不一致；
- PartialBatchFailure：分块批处理中途失败，已提交的块不回滚。
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional


class EngineError(Exception):
    code = "engine_error"
    status = 400

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        if code:
            self.code = code
        if status:
            self.status = status
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})


# ---------------------------------------------------------------------------
# 校验类
# ---------------------------------------------------------------------------


class ValidationError(EngineError):
    code = "validation_error"
    status = 422


class InvalidQuantity(ValidationError):
    code = "invalid_quantity"

    def __init__(self, qty: Any, *, field: str = "qty"):
        super().__init__(
            f"{field} must be a positive integer, got {qty!r}",
            context={"field": field, "value": qty},
        )


class UnknownPart(ValidationError):
    code = "unknown_part"
    status = 404

    def __init__(self, part_number: str):
        super().__init__(f"part {part_number!r} is not registered", context={"part_number": part_number})


class DuplicatePart(ValidationError):
    code = "duplicate_part"
    status = 409

    def __init__(self, part_number: str):
        super().__init__(f"part {part_number!r} is already registered", context={"part_number": part_number})


class InsufficientAvailable(ValidationError):
    code = "insufficient_available"
    status = 409

    def __init__(self, part_number: str, *, requested: int, available: int):
        super().__init__(
            f"insufficient available stock for {part_number!r}: requested={requested}, available={available}",
            context={"part_number": part_number, "requested": requested, "available": available},
        )


class OverAllocation(ValidationError):
    code = "over_allocation"
    status = 409

    def __init__(self, po_id: int, line_no: int, *, requested: int, remaining: int):
        super().__init__(
            f"allocation exceeds line quantity on PO {po_id} line {line_no}: "
            f"requested={requested}, remaining={remaining}",
            context={"po_id": po_id, "line_no": line_no, "requested": requested, "remaining": remaining},
        )


class OverDeallocation(ValidationError):
    code = "over_deallocation"
    status = 409

    def __init__(self, po_id: int, line_no: int, *, requested: int, allocated: int):
        super().__init__(
            f"cannot release {requested} on PO {po_id} line {line_no}: only {allocated} allocated",
            context={"po_id": po_id, "line_no": line_no, "requested": requested, "allocated": allocated},
        )


class UnknownOrder(ValidationError):
    code = "unknown_order"
    status = 404

    def __init__(self, po_id: int):
        super().__init__(f"purchase order {po_id} not found", context={"po_id": po_id})


class UnknownLineItem(ValidationError):
    code = "unknown_line_item"
    status = 404

    def __init__(self, po_id: int, *, part_number: str | None = None, line_no: int | None = None):
        target = f"line {line_no}" if line_no is not None else f"part {part_number!r}"
        super().__init__(
            f"purchase order {po_id} has no {target}",
            context={"po_id": po_id, "part_number": part_number, "line_no": line_no},
        )


class OrderCancelled(ValidationError):
    code = "order_cancelled"
    status = 409

    def __init__(self, po_id: int):
        super().__init__(f"purchase order {po_id} is cancelled", context={"po_id": po_id})


class MalformedImport(ValidationError):
    code = "malformed_import"


class MalformedImportRow(ValidationError):
    code = "malformed_import_row"

    def __init__(self, row_no: int, reason: str):
        super().__init__(f"row {row_no}: {reason}", context={"row_no": row_no, "reason": reason})
        self.row_no = row_no
        self.reason = reason


# ---------------------------------------------------------------------------
# 存储 / 一致性类
# ---------------------------------------------------------------------------


class PersistenceError(EngineError):
    code = "persistence_error"
    status = 503


class ConcurrentModification(PersistenceError):
    code = "concurrent_modification"
    status = 409


class LedgerInconsistency(EngineError):
    code = "ledger_inconsistency"
    status = 500

    def __init__(self, mismatches: List[Dict[str, Any]]):
        super().__init__(
            f"stock ledger replay disagrees with {len(mismatches)} position(s)",
            context={"mismatches": mismatches},
        )
        self.mismatches = mismatches


class PartialBatchFailure(EngineError):
    code = "partial_batch_failure"
    status = 500

    def __init__(
        self,
        *,
        stage: str,
        chunk_index: int,
        committed: List[Any],
        cause: BaseException,
    ):
        super().__init__(
            f"{stage} failed at chunk {chunk_index} after committing {len(committed)} item(s): {cause}",
            context={
                "stage": stage,
                "chunk_index": chunk_index,
                "committed": list(committed),
                "cause": type(cause).__name__,
            },
        )
        self.stage = stage
        self.chunk_index = chunk_index
        self.committed = list(committed)
        self.cause = cause
