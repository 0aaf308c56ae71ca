"""
Health Check Endpoints

Provides health check endpoints for monitoring and orchestration.

Endpoints:
- GET /api/health - Basic health check
- GET /api/health/detailed - Detailed health with dependency checks
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text

from digestion.config import settings
from digestion.db.base import get_session_maker
from digestion.db.redis import get_redis
from digestion.dependencies import DigestionServices, get_digestion_services
from digestion.services.scheduler import get_scheduled_jobs, scheduler

router = APIRouter(prefix="/api/health", tags=["health"])


def _uses_redis(services: DigestionServices) -> bool:
    backends = {
        services.config.QUEUE_BACKEND.lower(),
        services.config.PROGRESS_BACKEND.lower(),
    }
    return "redis" in backends


@router.get("")
async def health_check():
    """
    Basic health check.

    Returns a simple status response indicating the API is running.
    """
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


@router.get("/detailed")
async def detailed_health_check(
    services: DigestionServices = Depends(get_digestion_services),
):
    """
    Detailed health check with dependency status.

    Checks connectivity to:
    - PostgreSQL database
    - Redis (when a Redis backend is configured)
    - Celery workers (broker dispatch mode)

    Reports queue depth, overload state and worker activity.
    """
    health = {"status": "healthy", "service": settings.APP_NAME, "dependencies": {}}

    # Check PostgreSQL
    try:
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
        health["dependencies"]["postgres"] = {"status": "healthy"}
    except Exception as e:
        health["dependencies"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    # Check Redis
    if _uses_redis(services):
        try:
            r = await get_redis()
            await r.ping()
            health["dependencies"]["redis"] = {"status": "healthy"}
        except Exception as e:
            health["dependencies"]["redis"] = {"status": "unhealthy", "error": str(e)}
            health["status"] = "degraded"

    # Check Celery workers
    if services.uses_broker:
        # Deferred import: loading Celery is only needed in broker mode
        from digestion.services.queue import get_queue_stats

        try:
            stats = get_queue_stats()
            if stats["workers"]:
                health["dependencies"]["celery_workers"] = {
                    "status": "healthy",
                    **stats,
                }
            else:
                health["dependencies"]["celery_workers"] = {
                    "status": "unhealthy",
                    "error": "No workers responding",
                }
                health["status"] = "degraded"
        except Exception as e:
            health["dependencies"]["celery_workers"] = {
                "status": "unhealthy",
                "error": str(e),
            }
            health["status"] = "degraded"

    # Queue
    try:
        depth = await services.monitor.get_queue_depth()
        overloaded = depth > services.queue.overload_threshold
        health["queue"] = {
            "depth": depth,
            "overloaded": overloaded,
            "dead_letters": len(await services.queue.dead_letters()),
            **services.monitor.get_stats(),
        }
        if overloaded:
            health["status"] = "degraded"
    except Exception as e:
        health["queue"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "degraded"

    if services.worker is not None:
        health["worker"] = {
            "running": services.worker.running,
            "active_jobs": services.worker.active_jobs,
            "prefetch": services.queue.prefetch,
        }

    health["scheduler"] = {
        "running": scheduler.running,
        "jobs": get_scheduled_jobs(),
    }

    return health
