"""
Ticket Settlement Engine - Main Application Entry Point

Race-free inventory and settlement for an event-ticketing platform:
- Tier, seat and bundle ledgers consumed atomically at order completion
- Per-entity locks (in-process or Redis) over optimistic-locking CAS updates
- Staff commissions and organizer credits kept consistent with inventory
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from settlement.core.config import get_settings
from settlement.core.logging import setup_logging, get_logger
from settlement.core.metrics import metrics_endpoint
from settlement.api.exception_handlers import register_exception_handlers
from settlement.api.router import api_router
from settlement.api.middleware import RequestLoggingMiddleware
from settlement.services.strategy_factory import get_lock_strategy, reset_lock_strategy

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    strategy = get_lock_strategy()
    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        lock_strategy=strategy.name,
    )

    yield

    await reset_lock_strategy()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Inventory consistency and settlement engine for event ticketing",
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

register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "lock_strategy": get_lock_strategy().name,
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
