"""
FastAPI application factory for the Versionary API.

This module creates the main FastAPI app with:
- CORS configuration for browser clients
- Bearer token middleware that attaches a RequestContext to each request
- The JSON error envelope for every non-2xx response
- Versioned entity, TUID and diagnostic routes

Invariants:
    - The Application container lives on app.state.api; handlers get it
      through Depends(get_api)
    - Tables are created in the lifespan hook, before the first request

How to change safely:
    - Register new routers here, HEAD routes before the matching GET
    - Keep middleware order: CORS wraps bearer authentication
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import Settings
from . import devices, diag, emails, events, images, metrics, organizations, tokens, tuids, users
from .auth import install_bearer_auth
from .context import Application
from .errors import install_error_handlers

logger = logging.getLogger(__name__)

ROUTERS = (
    diag.router,
    users.router,
    tokens.router,
    organizations.router,
    devices.router,
    emails.router,
    images.router,
    metrics.router,
    events.router,
    tuids.router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the entity tables before serving requests."""
    api: Application = app.state.api
    api.settings.log_config()
    await api.initialize()
    logger.info("Versionary API started", extra={"environment": api.settings.environment})

    yield

    logger.info("Versionary API stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional configuration (loaded from env if not provided)

    Returns:
        The configured FastAPI app

    Raises:
        ValueError: If the configuration is invalid
    """
    settings = settings or Settings()
    settings.validate_settings()

    app = FastAPI(
        title=settings.name,
        description=settings.description,
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.api = Application.from_settings(settings)

    install_bearer_auth(app)
    install_error_handlers(app)

    # CORS for browser clients; added last so it runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Location"],
    )

    for router in ROUTERS:
        app.include_router(router)

    return app

