"""
Library Seat Reservation API - Main Application Entry Point

Serves the reservation lifecycle (book, check-in/out, temporary release)
and runs the violation detector as a background task:
- Seat status mirrors the reservation bound to it
- Periodic sweep for no-shows, overstays, late check-ins and frequent cancellations
- Redis caching of the seat map with invalidation on every status change
- Structured logging with request and sweep correlation
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from library_seats.core.config import get_settings
from library_seats.core.logging import setup_logging, get_logger
from library_seats.core.metrics import metrics_endpoint
from library_seats.api.router import api_router
from library_seats.api.middleware import RequestLoggingMiddleware
from library_seats.db.base import Base
from library_seats.db.session import engine
from library_seats.services.cache_service import get_redis, close_redis, get_cache_stats
from library_seats.services.violation_detector import ViolationDetector

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
    )

    if settings.DB_CREATE_ALL:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_created")

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    detector = ViolationDetector()
    app.state.detector = detector
    if settings.DETECTION_AUTOSTART:
        detector.start_auto_detection(settings.DETECTION_INTERVAL_MS)

    yield

    # Cleanup
    await detector.stop_auto_detection()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Library seat reservations with automatic violation detection",
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

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    detector = getattr(app.state, "detector", None)
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
        "detector_running": detector.is_running if detector else False,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
