"""
Structured logging setup.

Usage:
    from welfaredesk.core.logging import configure_logging
    configure_logging(settings)

    # Anywhere else
    import structlog
    logger = structlog.get_logger()
    logger.info("Grant approved", assignment_id=str(grant.id))

Request-scoped values (request_id, user_id) are bound with
``structlog.contextvars.bind_contextvars`` and merged into every event.
"""

import logging
import sys
from typing import Any

import structlog

from welfaredesk.core.config import Settings

_configured = False


def add_service_context(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that tags every event with the service name."""
    event_dict.setdefault("service", "welfaredesk-auth")
    return event_dict


def configure_logging(settings: Settings, force: bool = False) -> None:
    """Configure structlog and the stdlib root logger once per process."""
    global _configured
    if _configured and not force:
        return

    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_service_context,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True
