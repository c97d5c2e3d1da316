"""
HRMS Attendance — Application entry point.

This is the **only** file that assembles the app. Storage, clock and the
audit sink are built here (or handed in by tests) and published on
``app.state``; endpoints reach them through ``api/v1/deps.py``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hrms.api.v1.api import api_router
from hrms.api.v1.endpoints.attendance import limiter
from hrms.core.clock import Clock
from hrms.core.config import settings
from hrms.core.exceptions import register_exception_handlers
from hrms.db.session import Database
from hrms.services.audit import AuditSink, LoggingAuditSink

# Ensure all models are imported so metadata.create_all can see them
from hrms.models.activity_log import ActivityLogEntry  # noqa: F401
from hrms.models.employee import AttendanceSession, BreakPeriod, Employee  # noqa: F401
from hrms.models.user import User  # noqa: F401

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(application: FastAPI):
    database: Database = application.state.database

    # Create all tables
    await database.create_all()
    logger.info("Database tables initialised")

    logger.info("🚀 HRMS Attendance v%s started", settings.VERSION)
    yield
    await database.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app(
    database: Database | None = None,
    clock: Clock | None = None,
    audit_sink: AuditSink | None = None,
) -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Attendance heartbeats, idle tracking and work-hours recalculation",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    application.state.database = database or Database(settings.DATABASE_URL)
    application.state.clock = clock or Clock()
    application.state.audit_sink = audit_sink or LoggingAuditSink()

    # Rate limiting (heartbeat)
    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()
