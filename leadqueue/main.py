"""
LeadQueue - lead leasing and queue distribution for call-center agents.
Main FastAPI application entry point.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.base import BaseHTTPMiddleware
from leadqueue import __version__
from leadqueue.config import get_settings
from leadqueue.api.router import api_router
from leadqueue.database import dispose_engine
from leadqueue.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("leadqueue")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


async def datastore_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """The lead store is unreachable: fail this action only, client may retry."""
    logger.error(
        "Datastore error on %s %s: %s",
        request.method, request.url.path, str(exc),
        extra={"error_code": "datastore_unavailable"},
    )
    return JSONResponse(
        status_code=503,
        content={"detail": "Lead store unavailable, please retry"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("LeadQueue starting up (env=%s)", settings.app_env)

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    worker_tasks: list[asyncio.Task] = []
    if settings.lease_reaper_enabled:
        from leadqueue.workers.lease_reaper import run_lease_reaper
        worker_tasks.append(asyncio.create_task(run_lease_reaper()))
        logger.info("Lease reaper worker started")
    else:
        logger.info("Lease reaper worker disabled (stale leases are swept on pull)")

    yield

    logger.info("LeadQueue shutting down - stopping %d workers...", len(worker_tasks))
    for task in worker_tasks:
        task.cancel()
    if worker_tasks:
        await asyncio.gather(*worker_tasks, return_exceptions=True)
    await dispose_engine()
    logger.info("LeadQueue shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="LeadQueue",
        description="Lead leasing and queue distribution for call-center agents",
        version=__version__,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
            settings.app_base_url,
        ],
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=[
            "Authorization", "Content-Type", "X-Correlation-ID",
            "Accept", "Origin", "X-Requested-With",
        ],
    )

    # Correlation ID middleware (must be added AFTER CORS so it runs on every request)
    application.add_middleware(CorrelationIdMiddleware)

    application.add_exception_handler(SQLAlchemyError, datastore_error_handler)
    application.include_router(api_router)

    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "leadqueue.main:app",
        host=settings.app_host,
        port=settings.app_port,
        log_config=None,
    )
