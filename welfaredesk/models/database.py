"""
Database connection and session management.
"""

from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from welfaredesk.core.config import DatabaseSettings, settings


def build_engine(db_settings: DatabaseSettings, **overrides: Any) -> AsyncEngine:
    """Create an async engine from settings (pool options only where they apply)."""
    options: dict[str, Any] = {"echo": db_settings.echo}
    if not db_settings.url.startswith("sqlite") and "poolclass" not in overrides:
        options.update(
            pool_size=db_settings.pool_size,
            max_overflow=db_settings.pool_overflow,
            pool_timeout=db_settings.pool_timeout,
        )
    options.update(overrides)
    return create_async_engine(db_settings.url, **options)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the engine, the services and the worker."""
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create async engine
engine = build_engine(settings.database)

# Session factory
async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Initialize database (create tables)."""
    from . import Base
    # Registers the RBAC tables on Base.metadata
    import welfaredesk.extensions.auth.rbac.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()
