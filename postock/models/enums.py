# postock/models/enums.py
from __future__ import annotations

from enum import StrEnum


class LineItemStatus(StrEnum):
    """
    行项目可得状态（由操作员推进，允许回退）：

    - NOT_AVAILABLE        无货
    - PARTIALLY_AVAILABLE  部分到货
    - AVAILABLE            齐货
    - DISPATCHED           已发运（唯一影响整单状态派生的值）
    """

    NOT_AVAILABLE = "Not Available"
    PARTIALLY_AVAILABLE = "Partially Available"
    AVAILABLE = "Available"
    DISPATCHED = "Dispatched"


class OrderStatus(StrEnum):
    """
    整单履约状态：

    - OPEN / PARTIALLY_DISPATCHED / FULFILLED 由行状态派生，不允许直接写；
    - CANCELLED 只能通过显式取消进入。
    """

    OPEN = "Open"
    PARTIALLY_DISPATCHED = "Partially Dispatched"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"


class OrderStage(StrEnum):
    """业务阶段标签（开票/发运进度），人工维护，引擎不派生。"""

    OPEN_ORDERS = "Open Orders"
    PARTIALLY_INVOICED = "Partially Invoiced"
    INVOICED = "Invoiced"
    SHIPPED_IN_SYSTEM_DC = "Shipped in System DC"
    CANCELLED = "Cancelled"


class FulfillmentLabel(StrEnum):
    """整单备货标签，人工维护，引擎不派生。"""

    AVAILABLE = "Available"
    PARTIALLY_AVAILABLE = "Partially Available"
    NOT_AVAILABLE = "Not Available"


class SaleType(StrEnum):
    CASH = "Cash"
    CREDIT = "Credit"


class MovementType(StrEnum):
    """
    库存流水类型（stock_movements.type）：

    - INWARD           入库，total +q
    - OUTWARD_WALKING  门店散售出库，total −q
    - ALLOCATION       为 PO 预留，allocated +q
    - DEALLOCATION     释放预留，allocated −q
    - TRANSFER         仅记录，不影响数量
    """

    INWARD = "INWARD"
    OUTWARD_WALKING = "OUTWARD_WALKING"
    ALLOCATION = "ALLOCATION"
    DEALLOCATION = "DEALLOCATION"
    TRANSFER = "TRANSFER"


class TransitionKind(StrEnum):
    FORWARD = "forward"
    BACKWARD = "backward"
    UNCHANGED = "unchanged"
