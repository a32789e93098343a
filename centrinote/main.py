"""
FastAPI application entrypoint for the Centrinote Zoom OAuth service.
"""

from __future__ import annotations

from fastapi import FastAPI

from centrinote.api.routes import router as api_router
from centrinote.core.config import get_settings
from centrinote.core.logging import configure_logging


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Centrinote Zoom OAuth",
        version="0.1.0",
        description="Zoom OAuth handshake, token exchange relay and token lifecycle API.",
    )
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
