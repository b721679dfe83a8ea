"""Audit log schemas."""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class AuditLogFilter(BaseModel):
    """Schema for filtering audit logs."""

    actor_id: Optional[UUID] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    action: Optional[str] = None


# Standard audit actions
class AuditAction:
    """Standard audit action constants."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    PERMISSIONS_CHANGED = "permissions_changed"
    GRANT_CREATED = "grant_created"
    GRANT_APPROVED = "grant_approved"
    GRANT_REJECTED = "grant_rejected"
    GRANT_REVOKED = "grant_revoked"
    GRANT_EXPIRED = "grant_expired"
    LOCATION_MOVED = "location_moved"
    DEACTIVATE = "deactivate"
    ACTIVATE = "activate"
