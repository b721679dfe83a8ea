"""
RBAC Models - Permissions, Roles and Role Assignments.

    User 1──* RoleAssignment *──1 Role *──* Permission
                    │
                    *──* Location   (grant scope)

Usage:
    # Permissions are seeded at bootstrap
    Permission(name="beneficiaries.read.regional", resource="beneficiaries",
               action="read", scope_class="regional")

    # Roles bundle permissions and say where they may be granted
    Role(name="area_admin", allowed_location_types=["area"], max_users=100)

    # Grants are created through RBACService.grant_role, never directly
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from welfaredesk.core.exceptions import StructuralError
from welfaredesk.models.base import Base, StandardMixin
from welfaredesk.models.location import Location
from welfaredesk.utils.timezone import utc_now, within_window

from .scope import GLOBAL, SCOPE_GLOBAL, SCOPE_REGIONS, RegionScope, Scope


class ScopeClass(str, Enum):
    """Declared breadth of a permission."""

    OWN = "own"
    REGIONAL = "regional"
    GLOBAL = "global"


class Sensitivity(str, Enum):
    PUBLIC = "public"
    INTERNAL = "internal"
    CONFIDENTIAL = "confidential"
    RESTRICTED = "restricted"
    TOP_SECRET = "top_secret"


class RoleType(str, Enum):
    SYSTEM = "system"
    CUSTOM = "custom"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class DeactivationReason(str, Enum):
    REVOKED = "revoked"
    EXPIRED = "expired"


# Many-to-many relationship between Role and Permission
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid(as_uuid=True), ForeignKey("permissions.id", ondelete="RESTRICT"), primary_key=True),
)

# Locations a regional grant is bound to
role_assignment_locations = Table(
    "role_assignment_locations",
    Base.metadata,
    Column(
        "assignment_id",
        Uuid(as_uuid=True),
        ForeignKey("role_assignments.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "location_id",
        Uuid(as_uuid=True),
        ForeignKey("locations.id", ondelete="RESTRICT"),
        primary_key=True,
    ),
)


class Permission(Base, StandardMixin):
    """
    Permission definition.

    Names follow ``<resource>.<action>[.<qualifier>]``. The qualifier
    usually spells the breadth (``.all``, ``.regional``, ``.own``), so
    ``users.read.all`` and ``users.read.regional`` are distinct
    permissions and never compete.

    Examples:
        Permission(name="users.read.all", resource="users", action="read", scope_class="global")
        Permission(name="applications.approve", resource="applications", action="approve",
                   scope_class="regional", sensitivity="confidential", audit_required=True)
        Permission(name="payments.disburse", resource="payments", action="disburse",
                   conditions={"time_window": {"start_hour": 9, "end_hour": 17, "days": ["monday"]}})
    """

    __tablename__ = "permissions"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Parsed from the name; "module" in admin screens
    resource: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    scope_class: Mapped[str] = mapped_column(String(20), nullable=False, default=ScopeClass.REGIONAL.value)
    sensitivity: Mapped[str] = mapped_column(String(20), nullable=False, default=Sensitivity.INTERNAL.value)
    audit_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Extra request checks keyed by condition type, e.g.
    # {"time_window": {"start_hour": 9, "end_hour": 17}, "ip_restriction": {"allow": ["10.0.0.0/8"]}}
    conditions: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Permission {self.name}>"


class Role(Base, StandardMixin):
    """
    Role definition.

    A named bundle of permissions plus the rules for granting it: which
    location types it may be bound to, whether it may be granted globally,
    how many locations one grant may carry, how many users may hold it at
    once and whether a grant needs approval.

    Changing a role's permissions takes effect for every holder on their
    next check.
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role_type: Mapped[str] = mapped_column(String(20), nullable=False, default=RoleType.CUSTOM.value)

    # Informational ordering (higher = more privileged); not used for inheritance
    level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Scope configuration
    allowed_location_types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    allow_global_scope: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    allow_multiple_scopes: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    max_scopes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Constraints
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_deletable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_modifiable: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    permissions: Mapped[list["Permission"]] = relationship(
        "Permission",
        secondary=role_permissions,
        lazy="selectin",
    )

    @property
    def permission_names(self) -> set[str]:
        return {p.name for p in self.permissions}

    @property
    def is_system(self) -> bool:
        return self.role_type == RoleType.SYSTEM.value

    def __repr__(self) -> str:
        return f"<Role {self.name}>"


class RoleAssignment(Base, StandardMixin):
    """
    A grant: user holds role at a scope for a validity window.

    Contributes permissions only while
    ``is_active and approval_status == approved and valid_from <= now < valid_until``.
    Grants are deactivated on revocation or expiry and never deleted.

    Examples:
        # Area admin over two areas
        RoleAssignment(user_id=u.id, role_id=area_admin.id, scope_kind="regions",
                       locations=[area_a, area_b])

        # Temporary cover, ends on its own
        RoleAssignment(..., is_temporary=True, valid_until=datetime(2025, 3, 31, tzinfo=UTC))
    """

    __tablename__ = "role_assignments"
    __table_args__ = (
        Index("ix_role_assignments_user_live", "user_id", "is_active", "approval_status"),
        Index("ix_role_assignments_role_live", "role_id", "is_active", "approval_status"),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    granted_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assignment_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Scope: "global" or "regions" + rows in role_assignment_locations
    scope_kind: Mapped[str] = mapped_column(String(20), nullable=False)

    # Validity period
    valid_from: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    valid_until: Mapped[datetime | None] = mapped_column(nullable=True, index=True)

    is_primary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_temporary: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Approval workflow
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.APPROVED.value
    )
    approved_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approval_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Deactivation (revocation or expiry)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    deactivated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deactivated_by_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    deactivation_reason: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Relationships
    role: Mapped["Role"] = relationship("Role", lazy="selectin")
    locations: Mapped[list["Location"]] = relationship(
        "Location",
        secondary=role_assignment_locations,
        lazy="selectin",
    )

    @property
    def location_ids(self) -> frozenset[UUID]:
        return frozenset(loc.id for loc in self.locations)

    @property
    def scope(self) -> Scope:
        """
        Typed scope of this grant.

        Raises:
            StructuralError: kind and location rows disagree
        """
        ids = self.location_ids
        if self.scope_kind == SCOPE_GLOBAL:
            if ids:
                raise StructuralError(
                    "Global grant carries scope locations",
                    assignment_id=str(self.id),
                )
            return GLOBAL
        if self.scope_kind == SCOPE_REGIONS:
            if not ids:
                raise StructuralError(
                    "Regional grant has no scope locations",
                    assignment_id=str(self.id),
                )
            return RegionScope(ids)
        raise StructuralError(
            f"Unknown scope kind '{self.scope_kind}'",
            assignment_id=str(self.id),
        )

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED.value

    @property
    def is_pending(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING.value

    def is_live(self, now: datetime | None = None) -> bool:
        """Whether this grant contributes permissions at ``now``."""
        return (
            self.is_active
            and self.is_approved
            and within_window(self.valid_from, self.valid_until, now)
        )

    def __repr__(self) -> str:
        return f"<RoleAssignment user={self.user_id} role={self.role_id} {self.scope_kind}>"
