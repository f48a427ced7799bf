"""FastAPI application entry point for PDV Sentinel."""

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pdv_sentinel.api.middleware.error_handler import global_exception_handler
from pdv_sentinel.api.middleware.logging import StructuredLoggingMiddleware
from pdv_sentinel.api.routes.audit import router as audit_router
from pdv_sentinel.api.routes.detection import router as detection_router
from pdv_sentinel.api.routes.health import router as health_router
from pdv_sentinel.api.routes.sync import router as sync_router
from pdv_sentinel.config import settings
from pdv_sentinel.shared.exceptions import SentinelError
from pdv_sentinel.shared.logging import setup_logging

logger = structlog.get_logger()

# Track app start time for uptime calculation
APP_START_TIME: float = 0.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown logic."""
    global APP_START_TIME
    APP_START_TIME = time.time()
    setup_logging(settings.log_level, settings.log_format)

    logger.info(
        "sentinel_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
    )

    from pdv_sentinel.db.database import init_db

    await init_db()

    yield

    logger.info("sentinel_shutting_down")


app = FastAPI(
    title="PDV Sentinel",
    description="Point-of-sale fraud detection and ERP synchronization service",
    version=settings.app_version,
    lifespan=lifespan,
)

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(StructuredLoggingMiddleware)

# Domain and client errors are mapped to 4xx; anything else becomes a 500.
for exc_class in (SentinelError, ValueError, LookupError, Exception):
    app.add_exception_handler(exc_class, global_exception_handler)

app.include_router(health_router)
app.include_router(detection_router)
app.include_router(sync_router)
app.include_router(audit_router)


def get_uptime() -> int:
    """Get application uptime in seconds."""
    if APP_START_TIME == 0.0:
        return 0
    return int(time.time() - APP_START_TIME)
