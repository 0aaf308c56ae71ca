"""
Startup Lifecycle Integration

Starts and stops the digestion services with the FastAPI application.

    startup_digestion_services()
        +---> compose services (digestion.dependencies)
        +---> DigestionWorker.start()   (local dispatch mode only)
        +---> start_scheduler()         (sweep, notification scan, health)

    shutdown_digestion_services()
        +---> stop_scheduler()
        +---> DigestionWorker.stop()    (waits for active jobs)
        +---> close Redis pool and database engine

Usage:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await startup_digestion_services()
        yield
        await shutdown_digestion_services()
"""

import logging
from typing import Optional

from digestion.db.base import close_db
from digestion.db.redis import close_redis_pool
from digestion.dependencies import DigestionServices, get_services
from digestion.services.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)

# Seconds to wait for in-flight jobs on shutdown
SHUTDOWN_TIMEOUT_SECONDS = 60.0


async def startup_digestion_services(
    services: Optional[DigestionServices] = None,
) -> DigestionServices:
    services = services or get_services()

    if services.worker is not None:
        await services.worker.start()
    else:
        logger.info("Broker dispatch enabled, jobs run on Celery workers")

    start_scheduler(services)
    return services


async def shutdown_digestion_services(
    services: Optional[DigestionServices] = None,
) -> None:
    services = services or get_services()

    stop_scheduler()
    if services.worker is not None:
        await services.worker.stop(timeout=SHUTDOWN_TIMEOUT_SECONDS)

    await close_redis_pool()
    await close_db()
    logger.info("Digestion services shut down")
