"""
Application entry point: logging, lifecycle and routing.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.jobs.background_tasks import background_runner
from app.middleware import CORSMiddleware, RequestContextMiddleware
from app.routes import builds, health, testers, udid
from app.services.lifecycle_service import get_lifecycle_service
from app.services.signing_service import is_signing_available

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    missing = settings.missing_required()
    if missing:
        # Endpoints that need these will fail per request; the process still starts.
        logger.warning("Missing required configuration", missing=missing)
    if not is_signing_available():
        logger.warning("Profile signing not configured, serving unsigned mobileconfig")
    if not settings.smtp_configured():
        logger.warning("SMTP not configured, download emails will fail")

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await background_runner.shutdown()
    except Exception as e:
        logger.error("Error draining background tasks", error=str(e))
        shutdown_errors.append(f"Background tasks: {e}")

    try:
        await get_lifecycle_service().close()
    except Exception as e:
        logger.error("Error closing HTTP clients", error=str(e))
        shutdown_errors.append(f"HTTP clients: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Ad-Hoc Distribution Backend",
    description="Tester registration, device enrollment and ad-hoc build distribution",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(testers.router)
app.include_router(udid.router)
app.include_router(builds.router)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log HTTP requests with timing."""
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000

    log_request(
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time, 2),
    )
    return response


# Added last so it runs first and the request id is bound for every log line.
app.add_middleware(CORSMiddleware, allowed_origins=settings.cors_origins())
app.add_middleware(RequestContextMiddleware)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
