# app/main.py
"""
Prospecting CRM companion API.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from app.config import settings
from app.features.engagements import engagements_router
from app.infrastructure.observability.logging import get_logger, log_request, setup_logging
from app.routes import health
from app.services.hubspot_client import close_hubspot_client
from app.services.redis_client import redis_client

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        hubspot_configured=settings.hubspot_configured(),
        summarizer_enabled=settings.summarizer_configured(),
        cache_backend=settings.ENGAGEMENT_CACHE_BACKEND,
    )

    if settings.ENGAGEMENT_CACHE_BACKEND == "redis":
        logger.info("Initializing Redis connection")
        await redis_client.initialize()

    yield

    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await close_hubspot_client()
    except Exception as e:
        logger.error("Error closing HubSpot client", error=str(e))
        shutdown_errors.append(f"HubSpot: {e}")

    if settings.ENGAGEMENT_CACHE_BACKEND == "redis":
        try:
            logger.info("Closing Redis connection")
            await redis_client.close()
        except Exception as e:
            logger.error("Error closing Redis", error=str(e))
            shutdown_errors.append(f"Redis: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


app = FastAPI(
    title="Prospecting CRM Companion",
    description="Recent HubSpot engagements with cached LLM summaries",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(engagements_router)


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


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
