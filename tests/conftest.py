# tests/conftest.py
from __future__ import annotations

import os
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# 在 import postock.main 之前固定测试环境（get_settings 有缓存）
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from postock.api.deps import get_engine  # noqa: E402
from postock.db.base import Base, init_models  # noqa: E402
from postock.db.session import get_session  # noqa: E402
from postock.main import app  # noqa: E402
from postock.models import PurchaseOrder, StockPosition, part_key  # noqa: E402
from postock.services.activity_writer import ActivityEvent, DbActivityEmitter  # noqa: E402
from postock.services.allocation_engine import AllocationEngine  # noqa: E402
from postock.services.purchase_order_queries import get_po_with_lines  # noqa: E402

init_models()


# =========================================
# 每用例独立的内存库（StaticPool 共享同一连接）
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    """
    一次性会话：服务层单测直接在上面操作，用例结束回滚。
    """
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


class RecordingEmitter(DbActivityEmitter):
    """照常落库，同时记录每次 emit，便于断言“恰好一次”。"""

    def __init__(self) -> None:
        self.events: List[ActivityEvent] = []

    async def emit(self, session: AsyncSession, event: ActivityEvent) -> None:
        await super().emit(session, event)
        self.events.append(event)


@pytest.fixture(scope="function")
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


@pytest.fixture(scope="function")
def alloc_engine(async_session_maker, emitter: RecordingEmitter) -> AllocationEngine:
    # 小分块，便于覆盖多块路径
    return AllocationEngine(
        async_session_maker,
        emitter=emitter,
        delete_chunk_size=2,
        import_chunk_size=2,
    )


# =========================================
# 读取辅助：每次新开 session，避免读到 identity map 里的旧对象
# =========================================
@pytest.fixture
def read_position(async_session_maker):
    async def _read(part_number: str) -> Optional[StockPosition]:
        async with async_session_maker() as s:
            return (
                await s.execute(select(StockPosition).where(StockPosition.part_key == part_key(part_number)))
            ).scalars().first()

    return _read


@pytest.fixture
def read_po(async_session_maker):
    async def _read(po_id: int) -> Optional[PurchaseOrder]:
        async with async_session_maker() as s:
            return await get_po_with_lines(s, po_id)

    return _read


@pytest.fixture
def count_rows(async_session_maker):
    async def _count(model: Any, *where: Any) -> int:
        async with async_session_maker() as s:
            stmt = select(func.count()).select_from(model)
            for w in where:
                stmt = stmt.where(w)
            return int((await s.execute(stmt)).scalar_one())

    return _count


@pytest.fixture
def make_order(alloc_engine: AllocationEngine):
    """按 [(part_number, quantity), ...] 快速建单。"""

    async def _make(
        po_number: str,
        items: List[tuple[str, int]],
        *,
        customer_name: str = "Acme Motors",
        **header: Any,
    ) -> PurchaseOrder:
        fields: Dict[str, Any] = {"po_number": po_number, "customer_name": customer_name, **header}
        lines = [{"part_number": pn, "quantity": qty, "rate": "10.00"} for pn, qty in items]
        return await alloc_engine.create_order(fields, lines)

    return _make


# =========================================
# HTTP 客户端：覆盖 get_session / get_engine 到测试库
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(async_session_maker, alloc_engine) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def _get_session() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as s:
            yield s

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_engine] = lambda: alloc_engine

    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
            yield c
    finally:
        app.dependency_overrides.clear()
