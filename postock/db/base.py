# postock/db/base.py
from __future__ import annotations

import importlib
import logging

from sqlalchemy.orm import DeclarativeBase, configure_mappers

log = logging.getLogger("postock.models")


class Base(DeclarativeBase):
    """全局唯一 ORM Base"""

    pass


_INITIALIZED: bool = False  # 防重复初始化

_MODEL_MODULES = (
    "postock.models.stock_position",
    "postock.models.stock_movement",
    "postock.models.purchase_order",
    "postock.models.purchase_order_line",
    "postock.models.po_log",
    "postock.models.notification",
)


def init_models(*, force: bool = False) -> None:
    """
    集中导入模型 + 固化关系映射。

    Alembic / create_all 之前调用，保证 Base.metadata 中包含全部表。
    """
    global _INITIALIZED
    if _INITIALIZED and not force:
        return

    for mod in _MODEL_MODULES:
        importlib.import_module(mod)

    configure_mappers()
    _INITIALIZED = True
    log.info("ORM models initialized & mappers configured (loaded %d modules)", len(_MODEL_MODULES))
