"""StaffHub — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from staffhub.attendance.router import admin_router as attendance_admin_router
from staffhub.attendance.router import router as attendance_router
from staffhub.common.cache import build_balance_cache
from staffhub.common.exceptions import register_exception_handlers
from staffhub.common.rate_limit import limiter
from staffhub.config import settings
from staffhub.database import engine
from staffhub.leave.router import router as leave_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("StaffHub starting (%s)", settings.ENVIRONMENT)
    yield
    app.state.balance_cache.clear()
    await engine.dispose()
    logger.info("StaffHub stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="StaffHub",
        description="Employee leave accounting and attendance core",
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

    # Paid-leave balance cache, one per application
    app.state.balance_cache = build_balance_cache()

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": "1.0.0",
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(leave_router, prefix="/api/v1/leaves", tags=["leave"])
    app.include_router(
        attendance_admin_router,
        prefix="/api/v1/attendance",
        tags=["attendance"],
    )
    app.include_router(
        attendance_router,
        prefix="/api/v1/attendance/{employee_id}",
        tags=["attendance"],
    )

    return app


app = create_app()
