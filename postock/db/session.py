# postock/db/session.py
# 异步会话工厂 + FastAPI 依赖（get_session）
from __future__ import annotations

import re
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from postock.core.config import get_settings


# ---- DSN 归一：PG → psycopg3，sqlite → aiosqlite ----
def normalize_async_dsn(url: str) -> str:
    url = url.strip()
    # 有些环境会把值写成 '"postgresql://..."'，统一剥掉两侧引号
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    if url.startswith("sqlite:///"):
        return "sqlite+aiosqlite://" + url[len("sqlite:///") - 1 :]
    if url.startswith("postgresql+asyncpg://") or url.startswith("postgres+asyncpg://"):
        return re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


_settings = get_settings()
ASYNC_URL = normalize_async_dsn(_settings.DATABASE_URL)

async_engine: AsyncEngine = create_async_engine(
    ASYNC_URL,
    future=True,
    pool_pre_ping=True,
    echo=_settings.SQL_ECHO,
)

AsyncSessionLocal: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ---- FastAPI 依赖 ----
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def create_schema() -> None:
    """开发环境直接建表（生产走 Alembic）。"""
    from postock.db.base import Base, init_models

    init_models()
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---- 关闭引擎（测试/生命周期） ----
async def close_engines() -> None:
    await async_engine.dispose()
