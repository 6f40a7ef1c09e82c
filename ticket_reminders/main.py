"""
Ticket Reminders - Main FastAPI Application

Hosts the cron trigger, the delivery webhook and the reminder log API, and
in development runs the scheduler in-process.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config.settings import settings
from .api.routes import api_router
from .api.middleware import CorrelationIdMiddleware, register_error_handlers
from .domain.errors import StoreError
from .repositories.async_mongo import create_indexes, close_async_connection, async_health_check
from .repositories.run_lock_repo import RunLockRepository
from .scheduler.dev_scheduler import is_scheduler_running, start_scheduler, stop_scheduler
from .utils.logger import setup_logging, get_logger

VERSION = "1.0.0"

# Setup logging first
setup_logging()
logger = get_logger(__name__)


# =============================================================================
# Application Lifecycle
# =============================================================================

def _should_run_scheduler() -> bool:
    return settings.scheduler_enabled and settings.environment == "development"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        - Creates MongoDB indexes
        - Starts the in-process scheduler (development only)

    Shutdown:
        - Stops scheduler
        - Closes database connections
    """
    logger.info("Starting Ticket Reminders service...")

    try:
        await create_indexes()
    except Exception as e:
        logger.error(f"Failed to create indexes: {e}")

    if _should_run_scheduler():
        try:
            start_scheduler()
        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")

    if not settings.whatsapp_configured:
        logger.warning("WhatsApp API not configured; reminders will be recorded as failed")

    logger.info("Application started successfully")

    yield

    logger.info("Shutting down...")
    stop_scheduler()
    await close_async_connection()
    logger.info("Application shutdown complete")


# =============================================================================
# Application Factory
# =============================================================================

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    application = FastAPI(
        title="Ticket Reminders",
        description="Rule-driven WhatsApp reminders for maintenance tickets",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
    )

    _configure_middleware(application)
    register_error_handlers(application)
    _configure_routes(application)

    return application


def _configure_middleware(app: FastAPI) -> None:
    """Configure application middleware."""
    # allow_credentials must be False when allowing all origins
    allow_all = settings.cors_origins.strip() == "*"

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-Id"],
    )

    app.add_middleware(CorrelationIdMiddleware)


def _configure_routes(app: FastAPI) -> None:
    """Configure application routes."""
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["Health"])
    async def health():
        """
        Health check endpoint.

        Reports MongoDB connectivity and whether the in-process scheduler runs.
        """
        mongo_health = await async_health_check()
        run_lock = None
        if mongo_health.get("status") == "healthy":
            try:
                run_lock = await RunLockRepository().get_status(settings.scheduler_lock_name)
            except StoreError as e:
                logger.warning(f"Could not read run lock status: {e.message}")
        return {
            "status": "healthy" if mongo_health.get("status") == "healthy" else "degraded",
            "version": VERSION,
            "environment": settings.environment,
            "mongo": mongo_health,
            "scheduler": {
                "enabled": settings.scheduler_enabled,
                "running": is_scheduler_running(),
                "interval_minutes": settings.scheduler_interval_minutes,
                "run_lock": run_lock,
            },
            "whatsapp_configured": settings.whatsapp_configured,
        }


# =============================================================================
# Application Instance
# =============================================================================

app = create_app()
