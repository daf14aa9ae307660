"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance and wires the
lifespan: database pool, migrations and the two credential backends.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from accessgate.adapters.backends import build_bearer_backend, build_managed_backend
from accessgate.adapters.repository.postgres import run_migrations
from accessgate.api.v1 import router as v1_router
from accessgate.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "admin",
        "description": "Operator review of the waitlist - approve, resend, reject, cleanup",
    },
    {
        "name": "setup",
        "description": "Invited users redeem their setup link and complete onboarding",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Configures the root log level
    - Creates database connection pool and runs migrations
    - Builds the managed and bearer credential backends
    - Closes the bearer HTTP client and the pool on shutdown
    """
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    logger.info("Running database migrations...")
    run_migrations(pool)

    bearer_backend = build_bearer_backend(settings)

    # Store shared resources in app state for dependency injection
    app.state.pool = pool
    app.state.managed_backend = build_managed_backend(settings)
    app.state.bearer_backend = bearer_backend

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    bearer_backend.close()
    pool.close()
    logger.info("Database connection pool closed")


app = FastAPI(
    title="accessgate",
    description="Invitation-gated onboarding - waitlist approval, one-time setup links "
    "and account creation",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

app.include_router(v1_router, prefix="/v1")


@app.get("/health")
def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database validation.

    Returns 200 OK if application and database are healthy.
    Raises exception if database connection fails.
    """
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    return {"status": "healthy"}
