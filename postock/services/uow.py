# postock/services/uow.py
"""
Unit of Work（UoW）：统一管理 AsyncSession 的生命周期与事务边界。

用法：
    async with UnitOfWork(async_sessionmaker) as uow:
        await stock_service.inward(uow.session, ...)

事务语义：
    * 无异常 -> commit
    * 有异常 -> rollback
    * 只有 UoW 自己创建的 session 才负责 close；外部传入的现成 session 不关闭。

存储异常在这里统一翻译：
    * StaleDataError（version 校验失败）       -> ConcurrentModification
    * OperationalError / InterfaceError 等 DBAPI -> PersistenceError
业务异常（EngineError）原样抛出。
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Any, Callable, Optional, Union

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from postock.services.errors import ConcurrentModification, PersistenceError

log = logging.getLogger("postock.uow")

AsyncSessionFactory = Callable[[], AsyncSession]
SessionOrFactory = Union[AsyncSession, AsyncSessionFactory]


def translate_db_error(exc: BaseException) -> Optional[PersistenceError]:
    if isinstance(exc, StaleDataError):
        return ConcurrentModification(
            "row was modified by another writer; reload and retry",
            context={"cause": type(exc).__name__},
        )
    if isinstance(exc, DBAPIError):
        return PersistenceError(
            f"database error: {type(exc.orig).__name__ if exc.orig is not None else type(exc).__name__}",
            context={"cause": type(exc).__name__},
        )
    return None


class UnitOfWork(AbstractAsyncContextManager):
    def __init__(self, session_or_factory: SessionOrFactory) -> None:
        self._session_or_factory = session_or_factory
        self.session: Optional[AsyncSession] = None
        self._owns_session: bool = False

    async def __aenter__(self) -> "UnitOfWork":
        if isinstance(self._session_or_factory, AsyncSession):
            self.session = self._session_or_factory
            self._owns_session = False
        else:
            factory = self._session_or_factory
            if not callable(factory):
                raise TypeError("UnitOfWork 期望传入 AsyncSession 或 async_sessionmaker。")
            maybe_session: Any = factory()
            if not isinstance(maybe_session, AsyncSession):
                raise TypeError("UnitOfWork 工厂必须返回 AsyncSession。")
            self.session = maybe_session
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        if self.session is None:
            return False

        try:
            if exc_type:
                await self.session.rollback()
                translated = translate_db_error(exc)
                if translated is not None:
                    log.warning("uow rollback: %s", translated.message)
                    raise translated from exc
            else:
                try:
                    await self.session.commit()
                except (StaleDataError, DBAPIError) as e:
                    await self.session.rollback()
                    translated = translate_db_error(e)
                    log.warning("uow commit failed: %s", translated.message)
                    raise translated from e
        finally:
            if self._owns_session:
                try:
                    await self.session.close()
                finally:
                    self.session = None
        # False -> 异常继续向外抛
        return False
