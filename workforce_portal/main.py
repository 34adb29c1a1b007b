"""Workforce Portal — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from workforce_portal.common.exceptions import register_exception_handlers
from workforce_portal.common.rate_limit import limiter
from workforce_portal.config import settings
from workforce_portal.database import engine
from workforce_portal.expenses.router import router as expenses_router
from workforce_portal.notifications.router import router as notifications_router
from workforce_portal.timesheets.router import router as timesheets_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Workforce Portal starting (%s)", settings.ENVIRONMENT)
    if not settings.smtp_configured:
        logger.warning("SMTP_HOST is not set; emails will be logged, not sent")
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Workforce Portal",
        description="Timesheet and expense approvals with notification fan-out",
        version="1.0.0",
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(timesheets_router, prefix="/api/v1/timesheets", tags=["timesheets"])
    app.include_router(expenses_router, prefix="/api/v1/expenses", tags=["expenses"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])

    return app


app = create_app()
