# alembic/env.py

from __future__ import annotations

import os
import re
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine
from sqlalchemy.pool import NullPool

# Alembic 基本配置
config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# 延迟加载模型（避免导入时机引发的问题）
from postock.db.base import Base, init_models  # noqa: E402

target_metadata = Base.metadata


def normalize_sync_url(url: str) -> str:
    """
    迁移走同步驱动：
      - postgres / postgresql(+asyncpg) → postgresql+psycopg
      - sqlite+aiosqlite → sqlite
    """
    url = url.strip()
    if (url.startswith('"') and url.endswith('"')) or (url.startswith("'") and url.endswith("'")):
        url = url[1:-1].strip()
    url = re.sub(r"^sqlite\+aiosqlite://", "sqlite://", url)
    url = re.sub(r"^postgres(?:ql)?\+asyncpg://", "postgresql+psycopg://", url)
    url = re.sub(r"^postgres://", "postgresql+psycopg://", url)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def get_url() -> str:
    """
    优先级：
      1. DATABASE_URL
      2. alembic.ini 里的 sqlalchemy.url
    """
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("Alembic 无法确定数据库 URL：请设置 DATABASE_URL 或 alembic.ini 的 sqlalchemy.url")
    return normalize_sync_url(url)


def run_migrations_offline() -> None:
    """Offline 模式：不真实连库，只生成 SQL。"""
    init_models()
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Online 模式：真实连库执行迁移。"""
    init_models()
    url = get_url()
    engine = create_engine(url, poolclass=NullPool, future=True)

    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # sqlite 不支持 ALTER 约束，走 batch 模式
            render_as_batch=url.startswith("sqlite"),
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
