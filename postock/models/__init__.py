# postock/models/__init__.py
from postock.models.enums import (
    FulfillmentLabel,
    LineItemStatus,
    MovementType,
    OrderStage,
    OrderStatus,
    SaleType,
    TransitionKind,
)
from postock.models.notification import Notification
from postock.models.po_log import PoLog
from postock.models.purchase_order import PurchaseOrder
from postock.models.purchase_order_line import PurchaseOrderLine
from postock.models.stock_movement import StockMovement
from postock.models.stock_position import StockPosition, part_key

__all__ = [
    "FulfillmentLabel",
    "LineItemStatus",
    "MovementType",
    "Notification",
    "OrderStage",
    "OrderStatus",
    "PoLog",
    "PurchaseOrder",
    "PurchaseOrderLine",
    "SaleType",
    "StockMovement",
    "StockPosition",
    "TransitionKind",
    "part_key",
]
