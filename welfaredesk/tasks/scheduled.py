"""
Scheduled/periodic tasks.
"""

import asyncio
from datetime import datetime

import structlog
from celery import shared_task
from sqlalchemy.pool import NullPool

from welfaredesk.core.config import settings
from welfaredesk.core.logging import configure_logging
from welfaredesk.extensions.auth.rbac.service import RBACService
from welfaredesk.models.database import build_engine, build_session_factory

logger = structlog.get_logger()


async def run_expiry_sweep(now: datetime | None = None, session_factory=None) -> int:
    """
    Deactivate grants whose validity window has closed.

    Checks never depend on this: an expired grant is ignored on read
    whether or not the sweep has caught up.
    """
    engine = None
    if session_factory is None:
        # Each task run owns its event loop, so it cannot share the pooled engine
        engine = build_engine(settings.database, poolclass=NullPool)
        session_factory = build_session_factory(engine)

    try:
        async with session_factory() as session:
            expired = await RBACService(session).expire_grants(now)
            await session.commit()
    finally:
        if engine is not None:
            await engine.dispose()
    return expired


@shared_task
def expire_role_assignments():
    """Deactivate expired role assignments."""
    configure_logging(settings)
    logger.info("Running role assignment expiry sweep")
    expired = asyncio.run(run_expiry_sweep())
    return {"status": "completed", "expired": expired}
