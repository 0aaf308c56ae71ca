"""
Digestion Service Application

FastAPI app exposing job submission, progress, metrics and health. The
lifespan starts the in-process worker (local dispatch mode) and the
maintenance scheduler, and shuts both down gracefully.

Run:
    uvicorn digestion.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from digestion.config import settings
from digestion.middleware.error_handling import setup_error_handling
from digestion.routers import digestion, health, metrics
from digestion.services.lifecycle import (
    shutdown_digestion_services,
    startup_digestion_services,
)

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# Reduce noise from provider clients
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("LiteLLM").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the digestion services on startup, stop them on shutdown."""
    logger.info(f"Starting {settings.APP_NAME}")
    await startup_digestion_services()
    yield
    await shutdown_digestion_services()


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        lifespan=lifespan,
    )

    setup_error_handling(application, debug=settings.DEBUG)

    application.include_router(digestion.router)
    application.include_router(metrics.router)
    application.include_router(health.router)

    return application


app = create_app()
