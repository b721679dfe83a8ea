"""Audit log model for tracking administrative changes."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from welfaredesk.models.base import Base, UUIDMixin


class AuditLog(Base, UUIDMixin):
    """
    Immutable audit log of role, grant and location mutations.

    Rows are only ever inserted.
    """

    __tablename__ = "audit_logs"

    # Who performed the action
    actor_id: Mapped[Optional[UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    # What was affected
    resource_type: Mapped[str] = mapped_column(String(100))  # "role", "role_assignment", "location"
    resource_id: Mapped[str] = mapped_column(String(255))

    # What happened
    action: Mapped[str] = mapped_column(String(50))

    # Change details
    changes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)  # {"field": {"old": x, "new": y}}
    extra_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Human-readable summary
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Correlation with the request log
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"
