"""
Database models.

Role and permission models live with the RBAC extension
(``welfaredesk.extensions.auth.rbac.models``).
"""

from .base import Base, TimestampMixin, UUIDMixin, StandardMixin
from .user import User
from .location import Location, LocationType
from .audit_log import AuditLog

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "StandardMixin",
    "User",
    "Location",
    "LocationType",
    "AuditLog",
]
