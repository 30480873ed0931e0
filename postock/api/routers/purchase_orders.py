# postock/api/routers/purchase_orders.py
from __future__ import annotations

from fastapi import APIRouter

from postock.api.routers import purchase_orders_routes

router = APIRouter(prefix="/purchase-orders", tags=["purchase-orders"])


def _register_all_routes() -> None:
    purchase_orders_routes.register(router)


_register_all_routes()

__all__ = ["router"]
