"""
Typed errors raised by the authorization engine.

A denied check is NOT an error: it is a ``PolicyDecision`` with
``allowed=False``. Everything here signals either a rejected
administrative mutation or a broken system.
"""

from typing import Any


class WelfareDeskError(Exception):
    """Base class for engine errors."""

    code = "error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.details}


class NotFoundError(WelfareDeskError):
    """Reference to a nonexistent user, role, permission, location or grant."""

    code = "not_found"


class ValidationError(WelfareDeskError):
    """Malformed input to an administrative mutation."""

    code = "validation_error"


class PermissionNameError(ValidationError):
    """Permission name does not follow ``<resource>.<action>[.<qualifier>]``."""

    code = "invalid_permission_name"


class ConstraintError(WelfareDeskError):
    """Valid request that violates a business rule."""

    code = "constraint_violation"


class ForbiddenError(WelfareDeskError):
    """The caller of an administrative mutation lacks the right to perform it."""

    code = "forbidden"


class StructuralError(WelfareDeskError):
    """Corrupted data discovered while resolving access."""

    code = "structural_error"
