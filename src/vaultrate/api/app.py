"""FastAPI application factory for the rate API."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vaultrate.api import routes


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to start and stop the background tasks.

    Returns:
        Configured FastAPI application. Callers set ``app.state.rate_cache``
        and ``app.state.settings`` before serving.
    """
    app = FastAPI(title="Vault Rate Tracker", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(routes.router)

    return app
