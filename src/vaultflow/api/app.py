"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vaultflow.config import get_settings
from vaultflow.errors import ConfigurationError
from vaultflow.session import VaultSession, build_session

logger = logging.getLogger(__name__)


def create_app(session_factory: Optional[Callable[[], VaultSession]] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``session_factory`` defaults to building a session from settings. A
    configuration problem does not stop the app; session endpoints answer
    503 until it is fixed.
    """
    settings = get_settings()
    factory = session_factory or build_session

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        app.state.session = None
        app.state.session_error = None
        try:
            app.state.session = factory()
        except ConfigurationError as e:
            logger.error(f"Vault session not available: {e.message}")
            app.state.session_error = e.message
        yield
        if app.state.session is not None:
            await app.state.session.aclose()

    app = FastAPI(
        title="Vaultflow API",
        description="Vault deposit / withdraw orchestration",
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from vaultflow.api.routes import flows, health

    app.include_router(health.router, tags=["Health"])
    app.include_router(flows.router, tags=["Flows"])

    return app


# Default app instance
app = create_app()
