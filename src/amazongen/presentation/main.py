from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import inject
import uvicorn
from fastapi import FastAPI

from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import GenerationOrchestrator
from src.amazongen.domain.repositories import MaskRepository
from src.amazongen.infrastructure.database.orm import DatabaseOrm
from src.amazongen.infrastructure.database.seed import seed_default_masks
from src.amazongen.infrastructure.events.consumer import EventConsumer
from src.amazongen.infrastructure.providers.registry import BackendRegistry
from src.amazongen.presentation.mask_routes import router as mask_router
from src.amazongen.presentation.routes import router as api_router
from src.amazongen.presentation.websockets import (
    WebSocketStatusBroadcaster,
    connection_manager,
    router as ws_router,
)
from src.setup.api_config import get_api_settings
from src.setup.app_config import configure_di
from src.setup.logging_config import configure_logging

logger = logging.getLogger(__name__)

settings = get_api_settings()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    orm = inject.instance(DatabaseOrm)
    consumer = inject.instance(EventConsumer)

    await orm.create_all()
    await seed_default_masks(inject.instance(MaskRepository))
    await consumer.start()
    logger.info("AmazonGen API started", extra={"version": settings.APP_VERSION})
    try:
        yield
    finally:
        await inject.instance(GenerationOrchestrator).shutdown()
        await consumer.drain()
        await inject.instance(HistorySynchronizer).drain()
        await consumer.stop()
        await inject.instance(BackendRegistry).aclose()
        await orm.dispose()
        logger.info("AmazonGen API stopped")


def create_app() -> FastAPI:
    configure_logging()
    configure_di(WebSocketStatusBroadcaster(connection_manager))

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Batch product photo generation for e-commerce listings",
        lifespan=lifespan,
    )

    app.include_router(api_router, prefix="")
    app.include_router(mask_router, prefix="")
    app.include_router(ws_router, prefix="")
    return app


app = create_app()


def main() -> None:
    uvicorn.run("src.amazongen.presentation.main:app", host="0.0.0.0", port=8000)
