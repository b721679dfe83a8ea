"""
FastAPI application entry point.

The engine ships no routes of its own beyond health checks; host
applications mount their routers on the app returned by ``create_app``
and guard them with ``require_permission`` / ``accessible_locations``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from welfaredesk.api.errors import register_exception_handlers
from welfaredesk.api.middleware import RequestIdMiddleware
from welfaredesk.core.auth import AuthorizationService, build_authorization_service
from welfaredesk.core.config import settings
from welfaredesk.core.logging import configure_logging

# Registers the "rbac" engine and the "regional" scope provider
from welfaredesk.extensions.auth.rbac import LocationHierarchy, PermissionCatalog

logger = structlog.get_logger()


async def build_authorization(
    session_factory: async_sessionmaker[AsyncSession],
) -> AuthorizationService:
    """Load the catalog, prepare the tree cache and assemble the configured components."""
    async with session_factory() as session:
        catalog = await PermissionCatalog.load(session)

    hierarchy = LocationHierarchy(session_factory, cache_enabled=settings.auth.cache_location_tree)
    authorization = build_authorization_service(
        settings.auth.policy_engine,
        settings.auth.scope_provider,
        session_factory=session_factory,
        catalog=catalog,
        hierarchy=hierarchy,
    )
    logger.info(
        "Authorization ready",
        policy_engine=settings.auth.policy_engine,
        scope_provider=settings.auth.scope_provider,
        permissions=len(catalog),
    )
    return authorization


def create_app(
    authorization: AuthorizationService | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Pass ``authorization`` to skip building one at startup (tests do).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan events."""
        configure_logging(settings)

        owns_engine = session_factory is None
        if getattr(app.state, "authorization", None) is None:
            from welfaredesk.models.database import async_session_factory

            app.state.authorization = await build_authorization(
                session_factory or async_session_factory
            )

        yield

        if owns_engine:
            from welfaredesk.models.database import close_db

            await close_db()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    app.state.authorization = authorization

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check():
        """Quick health check endpoint (for load balancers)."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "authorization": app.state.authorization is not None,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("welfaredesk.main:app", host="0.0.0.0", port=8000)
