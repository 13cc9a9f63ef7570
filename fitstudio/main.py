"""
Fitness Studio Booking API - Main Application Entry Point

Bookable studio terms and member reservations:
- Serialized join/cancel protocol enforcing term capacity and a weekly quota
- Overlap-free term schedule with batch week generation
- Time-driven term lifecycle with a periodic sweep and retention purge
- Structured logging with request correlation, Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fitstudio.core.config import get_settings
from fitstudio.core.exceptions import ServiceError, service_error_handler, unhandled_error_handler
from fitstudio.core.logging import setup_logging, get_logger
from fitstudio.core.metrics import metrics_endpoint
from fitstudio.api.router import api_router
from fitstudio.api.middleware import RequestLoggingMiddleware
from fitstudio.scheduler import create_scheduler
from fitstudio.services.cache_service import get_redis, close_redis, get_cache_stats

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        timezone=settings.STUDIO_TIMEZONE,
    )

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info(
            "scheduler_started",
            sweep_every_minutes=settings.SWEEP_INTERVAL_MINUTES,
            retention_days=settings.RETENTION_DAYS,
        )

    yield

    # Cleanup
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Fitness studio term scheduling and concurrency-safe member bookings",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(Exception, unhandled_error_handler)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
