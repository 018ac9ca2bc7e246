from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.ingest import build_default_ingest_service


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    ingest = build_default_ingest_service()
    try:
        yield
    finally:
        ingest.shutdown()
        build_default_ingest_service.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Alert Engine",
        description="Threshold alert evaluation and time-series bucketing for sensor dashboards.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
