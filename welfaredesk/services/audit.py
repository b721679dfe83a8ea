"""Audit log service for tracking administrative changes."""

from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from welfaredesk.models.audit_log import AuditLog
from welfaredesk.schemas.audit_log import AuditAction, AuditLogFilter

logger = structlog.get_logger()


def compute_changes(old: dict, new: dict) -> dict[str, dict[str, Any]]:
    """
    Compute the differences between two dictionaries.

    Returns a dict of changed fields with old and new values.
    """
    changes = {}
    all_keys = set(old.keys()) | set(new.keys())

    for key in all_keys:
        old_value = old.get(key)
        new_value = new.get(key)

        if old_value != new_value:
            changes[key] = {"old": old_value, "new": new_value}

    return changes


class AuditLogService:
    """
    Service for writing and reading audit logs.

    Entries are added to the caller's session and flushed, so they commit
    or roll back together with the change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Any,
        actor_id: Optional[UUID] = None,
        changes: Optional[dict] = None,
        extra_data: Optional[dict] = None,
        summary: Optional[str] = None,
    ) -> AuditLog:
        """
        Create an audit log entry.

        Args:
            action: The action performed (use AuditAction constants)
            resource_type: Type of resource affected (e.g., "role", "location")
            resource_id: ID of the affected resource
            actor_id: User who performed the action (None for the system)
            changes: Dict of field changes {"field": {"old": x, "new": y}}
            extra_data: Additional context
            summary: Human-readable summary
        """
        entry = AuditLog(
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=str(resource_id),
            action=action,
            changes=changes,
            extra_data=extra_data,
            summary=summary or self._generate_summary(action, resource_type, actor_id),
            request_id=structlog.contextvars.get_contextvars().get("request_id"),
        )

        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "Audit log created",
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id),
            actor_id=str(actor_id) if actor_id else None,
        )

        return entry

    def _generate_summary(
        self,
        action: str,
        resource_type: str,
        actor_id: Optional[UUID],
    ) -> str:
        """Generate a human-readable summary."""
        actor = str(actor_id) if actor_id else "System"
        action_past = {
            AuditAction.CREATE: "created",
            AuditAction.UPDATE: "updated",
            AuditAction.DELETE: "deleted",
            AuditAction.PERMISSIONS_CHANGED: "changed permissions of",
            AuditAction.GRANT_CREATED: "created",
            AuditAction.GRANT_APPROVED: "approved",
            AuditAction.GRANT_REJECTED: "rejected",
            AuditAction.GRANT_REVOKED: "revoked",
            AuditAction.GRANT_EXPIRED: "expired",
            AuditAction.LOCATION_MOVED: "moved",
            AuditAction.DEACTIVATE: "deactivated",
            AuditAction.ACTIVATE: "activated",
        }.get(action, action)

        return f"{actor} {action_past} {resource_type}"

    async def list(
        self,
        *,
        filters: Optional[AuditLogFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditLog]:
        """List audit logs with optional filtering."""
        query = select(AuditLog)

        if filters:
            if filters.actor_id:
                query = query.where(AuditLog.actor_id == filters.actor_id)
            if filters.resource_type:
                query = query.where(AuditLog.resource_type == filters.resource_type)
            if filters.resource_id:
                query = query.where(AuditLog.resource_id == filters.resource_id)
            if filters.action:
                query = query.where(AuditLog.action == filters.action)

        query = query.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return list(result.scalars().all())
