# postock/api/deps.py
from __future__ import annotations

from functools import lru_cache

from postock.core.config import get_settings
from postock.db.session import AsyncSessionLocal
from postock.services.allocation_engine import AllocationEngine


@lru_cache
def _default_engine() -> AllocationEngine:
    settings = get_settings()
    return AllocationEngine(
        AsyncSessionLocal,
        delete_chunk_size=settings.DELETE_CHUNK_SIZE,
        import_chunk_size=settings.IMPORT_CHUNK_SIZE,
    )


def get_engine() -> AllocationEngine:
    """FastAPI 依赖；测试中通过 app.dependency_overrides 替换。"""
    return _default_engine()
