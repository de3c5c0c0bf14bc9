"""Workflow Events: FastAPI application entry point."""

import signal
import uuid
from contextlib import asynccontextmanager

# configure_structlog must run before the other package imports; structlog
# caches the processor chain on first use.
from workflow_events.core.logging import configure_structlog
from workflow_events.core.config import get_settings as _get_settings_early

_early_settings = _get_settings_early()
configure_structlog(
    log_level="DEBUG" if _early_settings.debug else "INFO",
    json_logs=not _early_settings.debug,
)

import structlog

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from workflow_events.api.routes import api_router
from workflow_events.core.config import get_settings
from workflow_events.db import build_engine, build_session_factory, connect_redis, create_tables
from workflow_events.middleware.correlation import get_correlation_id, setup_correlation_middleware
from workflow_events.pipeline import build_pipeline

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # SIGTERM flips this so /api/health returns 503 while connections drain
    app.state.shutting_down = False

    def handle_sigterm(signum, frame):
        app.state.shutting_down = True
        logger.info("sigterm_received", action="health_check_503_draining_connections")

    signal.signal(signal.SIGTERM, handle_sigterm)

    settings = get_settings()
    logger.info("startup_begin", app_name=settings.app_name, debug=settings.debug)

    engine = build_engine(settings.database_url, echo=settings.debug)
    await create_tables(engine)
    logger.info("db_initialized")

    redis = await connect_redis(settings.redis_url)
    logger.info("redis_initialized")

    pipeline = build_pipeline(settings, redis, build_session_factory(engine))
    app.state.pipeline = pipeline
    logger.info(
        "pipeline_initialized",
        triggers=[definition.id for definition in pipeline.trigger_registry.list_triggers()],
        credential_vault=pipeline.credential_vault.available,
        credential_issuer=pipeline.credential_issuer.available,
    )

    if settings.router_enabled:
        pipeline.scheduler.start()
    else:
        logger.info("router_disabled")

    yield

    logger.info("shutdown_begin")
    await pipeline.scheduler.stop()
    await redis.aclose()
    await engine.dispose()
    logger.info("shutdown_complete")


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Global exception handler for HTTPException with debug_id tracking.

    Logs server-side with full context, returns a sanitized body to the client.
    """
    debug_id = str(uuid.uuid4())

    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "http_exception",
        status_code=exc.status_code,
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        detail=exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "debug_id": debug_id},
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled errors; never leaks internals."""
    debug_id = str(uuid.uuid4())

    logger.error(
        "unhandled_exception",
        debug_id=debug_id,
        correlation_id=get_correlation_id(),
        path=request.url.path,
        method=request.method,
        user_id=getattr(request.state, "user_id", None),
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "debug_id": debug_id},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description="Event ingestion, subscription matching and workflow dispatch",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_correlation_middleware(app)

    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "workflow_events.main:app",
        host="0.0.0.0",
        port=8000,
        reload=_early_settings.debug,
    )
