"""
FastAPI application entrypoint for the trend intelligence API.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.logging import configure_logging
from app.dependencies.clients import get_bigquery_client


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    # Only close the warehouse client if a request ever built it.
    if get_bigquery_client.cache_info().currsize:
        await get_bigquery_client().aclose()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Trend Intelligence API",
        version="0.1.0",
        description="Product ranking, profile and favorites endpoints backed by BigQuery.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
