"""
Application entry point: ``uvicorn src.main:app``.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from src.api.v1.router import api_router
from src.cache.backends.factory import close_cache_backend
from src.core.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging import setup_logging
from src.db.session import dispose_engine
from src.services import limits
from src.services.nicepay import NicePayClient


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    http_client = httpx.AsyncClient(timeout=settings.nicepay.timeout_seconds)
    gateway = NicePayClient.from_settings(settings.nicepay, http_client)
    app.state.gateway = gateway

    scheduler = None
    if settings.scheduler.enabled:
        from src.schedulers.scheduler import create_scheduler

        scheduler = create_scheduler(gateway)
        scheduler.start()

    logger.info(f"{settings.PROJECT_NAME} started ({settings.ENV})")
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await http_client.aclose()
        await limits.close_client()
        await close_cache_backend()
        await dispose_engine()
        logger.info(f"{settings.PROJECT_NAME} stopped")


def create_application() -> FastAPI:
    """Build the FastAPI application."""
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    register_exception_handlers(application)
    application.include_router(api_router, prefix=f"{settings.API_PREFIX}/v1")

    @application.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "env": settings.ENV}

    return application


app = create_application()
