"""
Train Booking API - Main Application Entry Point

- Seat reservation: per-seat locks backed by a (trip, seat) primary key
- Booking lifecycle: explicit transition table + compare-and-swap on version
- Loyalty points derived from confirmed bookings, redemptions serialized per user
- Delay notifications fanned out per passenger and audited
- Background sweeper marking arrived trips
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.middleware import RequestLoggingMiddleware
from app.api.router import api_router
from app.core.clock import get_clock
from app.core.config import get_settings
from app.core.logging import get_logger, setup_logging
from app.core.metrics import metrics_endpoint
from app.db.session import AsyncSessionLocal
from app.infrastructure.messaging import close_messaging_sender, get_messaging_sender
from app.services.cache_service import close_redis, get_cache_stats, get_redis
from app.services.notification_service import NotificationDispatcher
from app.services.seat_ledger import seat_ledger
from app.services.sweeper import TripCleanupSweeper

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

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    # Taken-seat view must match persisted bookings before serving requests
    async with AsyncSessionLocal() as db:
        await seat_ledger.rebuild(db)

    sweeper = None
    if settings.SWEEPER_ENABLED:
        sweeper = TripCleanupSweeper(
            AsyncSessionLocal,
            get_clock(),
            NotificationDispatcher(get_messaging_sender()),
            interval=settings.SWEEPER_INTERVAL_SECONDS,
        )
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    await close_messaging_sender()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Train seat booking with concurrency-safe reservations and delay notifications",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

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
