"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import settings
from ..session import MappingSession, SessionRegistry
from ..suggestions import HttpSuggestionProvider
from .routes import router

logger = logging.getLogger(__name__)

# Global registry instance
_registry: Optional[SessionRegistry] = None


def build_session() -> MappingSession:
    """Create a session wired to the configured thresholds and provider."""
    provider = None
    if settings.suggestion_provider_url:
        provider = HttpSuggestionProvider(
            settings.suggestion_provider_url,
            timeout=settings.suggestion_timeout_seconds,
        )
    return MappingSession(
        provider=provider,
        acceptance_threshold=settings.acceptance_threshold,
        certainty_threshold=settings.certainty_threshold,
        date_format=settings.default_date_format,
        provider_timeout=settings.suggestion_timeout_seconds,
    )


def get_registry() -> SessionRegistry:
    """Get the global session registry."""
    global _registry
    if _registry is None:
        _registry = SessionRegistry(build_session)
    return _registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle."""
    registry = get_registry()
    if settings.suggestion_provider_url:
        logger.info(f"Using suggestion provider at {settings.suggestion_provider_url}")
    else:
        logger.info("No suggestion provider configured, using local matching only")
    yield
    removed = await registry.cleanup_expired()
    logger.info(f"Shutting down with {registry.size()} live sessions ({removed} expired)")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="ImportMap",
        description="CSV column to caption mapping and validation service",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    return app
