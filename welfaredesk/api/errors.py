"""
Map engine errors onto HTTP responses.

A denied check never reaches these handlers: the permission dependencies
turn a deny into a 403 themselves.
"""

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from welfaredesk.core.exceptions import (
    ConstraintError,
    ForbiddenError,
    NotFoundError,
    StructuralError,
    ValidationError,
    WelfareDeskError,
)

logger = structlog.get_logger()

# Most specific first
STATUS_CODES: list[tuple[type[WelfareDeskError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, 422),
    (ConstraintError, status.HTTP_409_CONFLICT),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (StructuralError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_code_for(exc: WelfareDeskError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def register_exception_handlers(app: FastAPI) -> None:
    """Install the engine error handler on ``app``."""

    @app.exception_handler(WelfareDeskError)
    async def engine_error_handler(request: Request, exc: WelfareDeskError):
        code = status_code_for(exc)
        if code >= 500:
            # Details of corrupt data stay in the logs
            logger.error("Request failed on corrupt data", path=request.url.path, error=exc.message)
            content = {"error": exc.code, "message": "Authorization data is inconsistent"}
        else:
            content = exc.to_dict()
        return JSONResponse(status_code=code, content=content)
