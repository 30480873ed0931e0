# postock/main.py
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from postock import __version__
from postock.api.routers import notifications, purchase_orders, stock
from postock.core.config import get_settings
from postock.core.logging import setup_logging
from postock.db.base import init_models
from postock.db.session import close_engines, create_schema
from postock.http_problem_handlers import register_exception_handlers
from postock.obs import metrics

settings = get_settings()
setup_logging(settings.LOG_LEVEL, json=settings.JSON_LOG)
logger = logging.getLogger("postock")

init_models()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    # dev 直接建表；其他环境由 alembic upgrade 负责
    if settings.ENV.lower() == "dev":
        await create_schema()
    logger.info("postock started env=%s", settings.ENV)
    yield
    await close_engines()


app = FastAPI(
    title="PO Stock Allocation",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(metrics.PrometheusMiddleware)

register_exception_handlers(app)

app.include_router(stock.router)
app.include_router(purchase_orders.router)
app.include_router(notifications.router)
app.include_router(metrics.router)


@app.get("/healthz", tags=["ops"])
async def healthz():
    return {"ok": True}
