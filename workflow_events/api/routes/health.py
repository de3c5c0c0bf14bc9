import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from workflow_events.api.deps import get_pipeline
from workflow_events.pipeline import Pipeline

logger = structlog.get_logger(__name__)

router = APIRouter()

SERVICE_NAME = "workflow-events"


@router.get("/health")
async def health_check(request: Request):
    """Liveness check.

    Returns 503 during graceful shutdown so the load balancer stops routing traffic.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(status_code=503, content={"status": "shutting_down", "service": SERVICE_NAME})

    pipeline = getattr(request.app.state, "pipeline", None)
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "router_running": bool(pipeline and pipeline.scheduler.running),
    }


@router.get("/ready")
async def readiness_check(pipeline: Pipeline = Depends(get_pipeline)):
    """Readiness: the workflow database and the event store's Redis both answer."""
    checks = {"database": False, "redis": False}

    try:
        async with pipeline.workflow_loader.session_factory() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:
        logger.error("readiness_database_failed", error=str(exc), error_type=type(exc).__name__)

    try:
        await pipeline.event_store.redis.ping()
        checks["redis"] = True
    except Exception as exc:
        logger.error("readiness_redis_failed", error=str(exc), error_type=type(exc).__name__)

    ready = all(checks.values())
    return JSONResponse(
        status_code=200 if ready else 503,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
