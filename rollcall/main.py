"""Rollcall API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map RollcallError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Logging and database initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py; main only wires them
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import rollcall.infrastructure.database as db_module
from rollcall import __version__
from rollcall.api.error_handlers import register_error_handlers
from rollcall.api.routes import attendance, health
from rollcall.config import get_settings
from rollcall.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    db_module.init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    logger.info("Rollcall API started")
    yield
    if db_module.db_manager:
        await db_module.db_manager.dispose()
    logger.info("Rollcall API shutting down")


app = FastAPI(
    title="Rollcall API", version=__version__, lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes: explicit registration
app.include_router(health.router)
app.include_router(attendance.router)

register_error_handlers(app)
