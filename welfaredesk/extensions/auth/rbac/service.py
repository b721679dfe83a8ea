"""
RBAC Service - Manage roles and role assignments.

Usage:
    service = RBACService(db, authorization=auth)

    # Create a role with permissions
    role = await service.create_role(RoleCreate(
        name="block_coordinator",
        permissions=["beneficiaries.read.regional", "applications.read.regional"],
        allowed_location_types=["area"],
        allow_multiple_scopes=True,
    ))

    # Grant it over two areas
    grant = await service.grant_role(user.id, role.id, regions(area_a.id, area_b.id))

    # Approval-gated roles start pending
    await service.approve_grant(grant.id, approver_id=admin.id)

    await service.revoke_grant(grant.id, revoked_by=admin.id)
    await db.commit()

Every method flushes but never commits, so a mutation and its audit entry
land in the caller's transaction together.
"""

from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

import structlog
from sqlalchemy import distinct, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from welfaredesk.core.auth.interfaces import DecisionScope
from welfaredesk.core.auth.service import AuthorizationService
from welfaredesk.core.config import settings
from welfaredesk.core.exceptions import (
    ConstraintError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from welfaredesk.models.location import Location, LocationType
from welfaredesk.models.user import User
from welfaredesk.schemas.audit_log import AuditAction
from welfaredesk.services.audit import AuditLogService, compute_changes
from welfaredesk.utils.timezone import to_utc, utc_now

from .catalog import parse_permission_name
from .models import (
    ApprovalStatus,
    DeactivationReason,
    Permission,
    Role,
    RoleAssignment,
)
from .schemas import RoleCreate
from .scope import GlobalScope, RegionScope, Scope

logger = structlog.get_logger()

LIVE_STATUSES = (ApprovalStatus.PENDING.value, ApprovalStatus.APPROVED.value)


class RBACService:
    """
    Service for managing RBAC roles and grants.

    ``authorization`` is needed only to decide pending grants: the
    approver's authority is checked through the same read contracts the
    web layer uses.
    """

    def __init__(
        self,
        db: AsyncSession,
        authorization: AuthorizationService | None = None,
        approval_permissions: Iterable[str] | None = None,
        allow_self_approval: bool | None = None,
    ):
        self.db = db
        self.authorization = authorization
        self.approval_permissions = list(
            approval_permissions if approval_permissions is not None
            else settings.auth.approval_permissions
        )
        self.allow_self_approval = (
            settings.auth.allow_self_approval if allow_self_approval is None
            else allow_self_approval
        )
        self.audit = AuditLogService(db)

    # ============================================================
    # ROLE MANAGEMENT
    # ============================================================

    async def create_role(self, data: RoleCreate, created_by: UUID | None = None) -> Role:
        """
        Create a new role.

        Raises:
            ValidationError: unknown permission, unknown location type, or a
                role that could never be granted anywhere
            ConstraintError: name already taken
        """
        location_types = self._validate_location_types(data.allowed_location_types)
        if not location_types and not data.allow_global_scope:
            raise ValidationError(
                "Role must allow at least one location type or global scope",
                role=data.name,
            )

        if await self.get_role_by_name(data.name) is not None:
            raise ConstraintError(f"Role '{data.name}' already exists", role=data.name)

        permissions = await self._resolve_permissions(data.permissions)

        role = Role(
            name=data.name,
            display_name=data.display_name or data.name.replace("_", " ").title(),
            description=data.description,
            role_type=data.role_type.value,
            level=data.level,
            allowed_location_types=location_types,
            allow_global_scope=data.allow_global_scope,
            allow_multiple_scopes=data.allow_multiple_scopes,
            max_scopes=data.max_scopes,
            max_users=data.max_users,
            requires_approval=data.requires_approval,
            is_deletable=data.is_deletable,
            is_modifiable=data.is_modifiable,
            is_default=data.is_default,
            is_active=True,
            permissions=permissions,
        )
        self.db.add(role)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            resource_type="role",
            resource_id=role.id,
            actor_id=created_by,
            changes={"created": {"name": role.name, "permissions": sorted(role.permission_names)}},
        )
        logger.info("Role created", role=role.name, permissions=len(permissions))
        return role

    async def get_role(self, role_id: UUID) -> Role:
        """Get role by ID."""
        role = await self.db.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role not found", role_id=str(role_id))
        return role

    async def get_role_by_name(self, name: str) -> Role | None:
        """Get role by name."""
        result = await self.db.execute(select(Role).where(Role.name == name))
        return result.scalar_one_or_none()

    async def list_roles(self, include_inactive: bool = False) -> list[Role]:
        """List roles, most privileged first."""
        query = select(Role).order_by(Role.level.desc(), Role.name)
        if not include_inactive:
            query = query.where(Role.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def update_role_permissions(
        self,
        role_id: UUID,
        permission_names: Iterable[str],
        updated_by: UUID | None = None,
    ) -> Role:
        """
        Replace a role's permission set.

        Takes effect for every holder from their next check.

        Raises:
            ForbiddenError: role is not modifiable (permission set untouched)
            ValidationError: unknown permission name
        """
        role = await self.get_role(role_id)
        if not role.is_modifiable:
            logger.warning("Refused to modify protected role", role=role.name, actor_id=str(updated_by))
            raise ForbiddenError(f"Role '{role.name}' cannot be modified", role=role.name)

        permissions = await self._resolve_permissions(permission_names)
        old = sorted(role.permission_names)
        role.permissions = permissions
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.PERMISSIONS_CHANGED,
            resource_type="role",
            resource_id=role.id,
            actor_id=updated_by,
            changes=compute_changes({"permissions": old}, {"permissions": sorted(role.permission_names)}),
        )
        logger.info("Role permissions updated", role=role.name, permissions=len(permissions))
        return role

    async def delete_role(self, role_id: UUID, deleted_by: UUID | None = None) -> Role:
        """
        Deactivate a role. Roles are kept for audit, never removed.

        Raises:
            ForbiddenError: role is not deletable
            ConstraintError: role still has active grants
        """
        role = await self.get_role(role_id)
        if not role.is_deletable:
            logger.warning("Refused to delete protected role", role=role.name, actor_id=str(deleted_by))
            raise ForbiddenError(f"Role '{role.name}' cannot be deleted", role=role.name)

        in_use = await self.db.scalar(
            select(func.count(RoleAssignment.id))
            .where(RoleAssignment.role_id == role.id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status.in_(LIVE_STATUSES))
        )
        if in_use:
            raise ConstraintError(
                f"Role '{role.name}' has {in_use} active assignment(s)",
                role=role.name,
                active_assignments=in_use,
            )

        role.is_active = False
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.DEACTIVATE,
            resource_type="role",
            resource_id=role.id,
            actor_id=deleted_by,
        )
        logger.info("Role deactivated", role=role.name)
        return role

    # ============================================================
    # GRANT LIFECYCLE
    # ============================================================

    async def grant_role(
        self,
        user_id: UUID,
        role_id: UUID,
        scope: Scope,
        *,
        granted_by: UUID | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        requires_approval: bool | None = None,
        is_primary: bool = False,
        is_temporary: bool = False,
        reason: str | None = None,
    ) -> RoleAssignment:
        """
        Grant a role to a user at a scope.

        The grant starts ``pending`` when the role (or the caller) asks for
        approval, otherwise ``approved``.

        Raises:
            NotFoundError: unknown user, role or scope location
            ValidationError: bad scope value or validity window
            ConstraintError: scope not allowed for the role, role full,
                inactive role or location, or an identical live grant exists
        """
        if not isinstance(scope, (GlobalScope, RegionScope)):
            raise ValidationError("Scope must be GLOBAL or regions(...)")

        if await self.db.get(User, user_id) is None:
            raise NotFoundError("User not found", user_id=str(user_id))

        role = await self._lock_role(role_id)
        if not role.is_active:
            raise ConstraintError(f"Role '{role.name}' is inactive", role=role.name)

        now = utc_now()
        valid_from = to_utc(valid_from) if valid_from else now
        valid_until = to_utc(valid_until) if valid_until else None
        if valid_until is not None and valid_until <= valid_from:
            raise ValidationError("valid_until must be after valid_from")
        if is_temporary and valid_until is None:
            raise ValidationError("Temporary grants need valid_until")

        locations = await self._validate_scope(role, scope)
        await self._ensure_not_duplicate(user_id, role, scope)
        await self._check_capacity(role, user_id)

        needs_approval = role.requires_approval or bool(requires_approval)
        grant = RoleAssignment(
            user_id=user_id,
            role_id=role.id,
            granted_by_id=granted_by,
            assignment_reason=reason,
            scope_kind=scope.kind,
            locations=locations,
            valid_from=valid_from,
            valid_until=valid_until,
            is_primary=is_primary,
            is_temporary=is_temporary,
            approval_status=(
                ApprovalStatus.PENDING.value if needs_approval else ApprovalStatus.APPROVED.value
            ),
            approved_by_id=None if needs_approval else granted_by,
            approved_at=None if needs_approval else now,
            is_active=True,
        )
        grant.role = role
        self.db.add(grant)
        await self.db.flush()

        if is_primary:
            await self._clear_other_primaries(grant)

        await self.audit.log(
            action=AuditAction.GRANT_CREATED,
            resource_type="role_assignment",
            resource_id=grant.id,
            actor_id=granted_by,
            extra_data={
                "user_id": str(user_id),
                "role": role.name,
                "scope": str(scope),
                "approval_status": grant.approval_status,
                "valid_until": valid_until.isoformat() if valid_until else None,
            },
        )
        await self._sync_primary_role(user_id)

        logger.info(
            "Role granted",
            assignment_id=str(grant.id),
            user_id=str(user_id),
            role=role.name,
            scope=str(scope),
            approval_status=grant.approval_status,
        )
        return grant

    async def approve_grant(
        self,
        assignment_id: UUID,
        approver_id: UUID,
        comments: str | None = None,
    ) -> RoleAssignment:
        """
        Approve a pending grant.

        Raises:
            ForbiddenError: approver lacks an approval permission covering
                the grant's scope, or is approving their own grant
            ConstraintError: grant is not pending, is inactive or expired,
                or the role is full
        """
        grant = await self.get_grant(assignment_id)
        await self._ensure_can_decide(grant, approver_id)

        now = utc_now()
        self._ensure_pending(grant)
        if grant.valid_until is not None and to_utc(grant.valid_until) <= now:
            raise ConstraintError("Grant has already expired", assignment_id=str(grant.id))

        role = await self._lock_role(grant.role_id)
        if not role.is_active:
            raise ConstraintError(f"Role '{role.name}' is inactive", role=role.name)
        await self._check_capacity(role, grant.user_id)

        await self._transition(
            grant,
            approval_status=ApprovalStatus.APPROVED.value,
            approved_by_id=approver_id,
            approved_at=now,
            approval_comments=comments,
        )

        await self.audit.log(
            action=AuditAction.GRANT_APPROVED,
            resource_type="role_assignment",
            resource_id=grant.id,
            actor_id=approver_id,
            extra_data={"user_id": str(grant.user_id), "role": role.name, "comments": comments},
        )
        await self._sync_primary_role(grant.user_id)

        logger.info(
            "Grant approved",
            assignment_id=str(grant.id),
            approver_id=str(approver_id),
            role=role.name,
        )
        return grant

    async def reject_grant(
        self,
        assignment_id: UUID,
        approver_id: UUID,
        comments: str | None = None,
    ) -> RoleAssignment:
        """
        Reject a pending grant. Rejection is final.

        Raises the same authority errors as ``approve_grant``.
        """
        grant = await self.get_grant(assignment_id)
        await self._ensure_can_decide(grant, approver_id)
        self._ensure_pending(grant)

        await self._transition(
            grant,
            approval_status=ApprovalStatus.REJECTED.value,
            approved_by_id=approver_id,
            approved_at=utc_now(),
            approval_comments=comments,
        )

        await self.audit.log(
            action=AuditAction.GRANT_REJECTED,
            resource_type="role_assignment",
            resource_id=grant.id,
            actor_id=approver_id,
            extra_data={"user_id": str(grant.user_id), "comments": comments},
        )
        logger.info("Grant rejected", assignment_id=str(grant.id), approver_id=str(approver_id))
        return grant

    async def revoke_grant(
        self,
        assignment_id: UUID,
        revoked_by: UUID | None = None,
        reason: str | None = None,
    ) -> RoleAssignment:
        """
        Deactivate a grant.

        Idempotent: revoking an inactive grant succeeds without changes.
        The flip is a single conditional UPDATE, so a concurrent check sees
        the grant either fully active or fully revoked.
        """
        grant = await self.get_grant(assignment_id)

        result = await self.db.execute(
            update(RoleAssignment)
            .where(RoleAssignment.id == assignment_id)
            .where(RoleAssignment.is_active.is_(True))
            .values(
                is_active=False,
                deactivated_at=utc_now(),
                deactivated_by_id=revoked_by,
                deactivation_reason=DeactivationReason.REVOKED.value,
            )
            .returning(RoleAssignment.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            logger.debug("Grant already inactive", assignment_id=str(assignment_id))
            return grant
        await self.db.refresh(grant)

        await self.audit.log(
            action=AuditAction.GRANT_REVOKED,
            resource_type="role_assignment",
            resource_id=grant.id,
            actor_id=revoked_by,
            extra_data={"user_id": str(grant.user_id), "reason": reason},
        )
        await self._sync_primary_role(grant.user_id)

        logger.info(
            "Grant revoked",
            assignment_id=str(assignment_id),
            revoked_by=str(revoked_by) if revoked_by else None,
        )
        return grant

    async def expire_grants(self, now: datetime | None = None) -> int:
        """
        Deactivate every active grant whose window has closed.

        Reads never depend on this sweep; it only keeps the table tidy and
        the legacy role field accurate.
        """
        now = to_utc(now) if now else utc_now()
        expired_filter = (
            RoleAssignment.is_active.is_(True),
            RoleAssignment.valid_until.is_not(None),
            RoleAssignment.valid_until <= now,
        )

        result = await self.db.execute(
            select(RoleAssignment.id, RoleAssignment.user_id).where(*expired_filter)
        )
        rows = result.all()
        if not rows:
            return 0

        expired_ids = [row.id for row in rows]
        await self.db.execute(
            update(RoleAssignment)
            .where(RoleAssignment.id.in_(expired_ids))
            .where(RoleAssignment.is_active.is_(True))
            .values(
                is_active=False,
                deactivated_at=now,
                deactivation_reason=DeactivationReason.EXPIRED.value,
            )
            .execution_options(synchronize_session="fetch")
        )

        for user_id in {row.user_id for row in rows}:
            await self._sync_primary_role(user_id)

        await self.audit.log(
            action=AuditAction.GRANT_EXPIRED,
            resource_type="role_assignment",
            resource_id="sweep",
            extra_data={"assignment_ids": [str(i) for i in expired_ids]},
            summary=f"System expired {len(expired_ids)} role assignment(s)",
        )
        logger.info("Expired role assignments", count=len(expired_ids))
        return len(expired_ids)

    async def get_grant(self, assignment_id: UUID) -> RoleAssignment:
        grant = await self.db.get(RoleAssignment, assignment_id)
        if grant is None:
            raise NotFoundError("Role assignment not found", assignment_id=str(assignment_id))
        return grant

    async def list_user_grants(
        self,
        user_id: UUID,
        include_inactive: bool = False,
    ) -> list[RoleAssignment]:
        query = (
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id)
            .order_by(RoleAssignment.valid_from)
        )
        if not include_inactive:
            query = query.where(RoleAssignment.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_pending_grants(self) -> list[RoleAssignment]:
        result = await self.db.execute(
            select(RoleAssignment)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status == ApprovalStatus.PENDING.value)
            .order_by(RoleAssignment.valid_from)
        )
        return list(result.scalars().all())

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _validate_location_types(types: Iterable[str]) -> list[str]:
        valid = set(LocationType.values())
        types = list(dict.fromkeys(types))
        unknown = [t for t in types if t not in valid]
        if unknown:
            raise ValidationError(
                f"Unknown location type(s): {', '.join(unknown)}",
                location_types=unknown,
            )
        return types

    async def _resolve_permissions(self, names: Iterable[str]) -> list[Permission]:
        names = list(dict.fromkeys(names))
        for name in names:
            parse_permission_name(name)

        if not names:
            return []

        result = await self.db.execute(select(Permission).where(Permission.name.in_(names)))
        found = {p.name: p for p in result.scalars().all()}
        missing = [n for n in names if n not in found]
        if missing:
            raise ValidationError(
                f"Unknown permission(s): {', '.join(missing)}",
                permissions=missing,
            )
        return [found[n] for n in names]

    async def _lock_role(self, role_id: UUID) -> Role:
        """Load the role row locked for the rest of the transaction."""
        result = await self.db.execute(
            select(Role).where(Role.id == role_id).with_for_update()
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise NotFoundError("Role not found", role_id=str(role_id))
        return role

    async def _validate_scope(self, role: Role, scope: Scope) -> list[Location]:
        if isinstance(scope, GlobalScope):
            if not role.allow_global_scope:
                raise ConstraintError(
                    f"Role '{role.name}' cannot be granted with global scope",
                    role=role.name,
                )
            return []

        ids = scope.location_ids
        if len(ids) > 1 and not role.allow_multiple_scopes:
            raise ConstraintError(
                f"Role '{role.name}' allows a single scope location",
                role=role.name,
            )
        if role.max_scopes is not None and len(ids) > role.max_scopes:
            raise ConstraintError(
                f"Role '{role.name}' allows at most {role.max_scopes} scope locations",
                role=role.name,
            )

        result = await self.db.execute(select(Location).where(Location.id.in_(ids)))
        locations = list(result.scalars().all())
        missing = ids - {loc.id for loc in locations}
        if missing:
            raise NotFoundError(
                "Scope location not found",
                location_ids=sorted(str(i) for i in missing),
            )

        allowed = set(role.allowed_location_types or [])
        for location in locations:
            if not location.is_active:
                raise ConstraintError(
                    f"Location '{location.code}' is inactive",
                    location_id=str(location.id),
                )
            if location.type not in allowed:
                raise ConstraintError(
                    f"Role '{role.name}' cannot be granted at a {location.type}",
                    role=role.name,
                    location_type=location.type,
                    allowed=sorted(allowed),
                )
        return locations

    async def _ensure_not_duplicate(self, user_id: UUID, role: Role, scope: Scope) -> None:
        now = utc_now()
        result = await self.db.execute(
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id)
            .where(RoleAssignment.role_id == role.id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status.in_(LIVE_STATUSES))
            .where(or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now))
        )
        for existing in result.scalars().all():
            if existing.scope == scope:
                raise ConstraintError(
                    f"User already holds '{role.name}' at this scope",
                    assignment_id=str(existing.id),
                )

    async def _count_holders(self, role_id: UUID, exclude_user_id: UUID | None = None) -> int:
        """Distinct users with a live grant of the role."""
        now = utc_now()
        query = (
            select(func.count(distinct(RoleAssignment.user_id)))
            .where(RoleAssignment.role_id == role_id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status == ApprovalStatus.APPROVED.value)
            .where(RoleAssignment.valid_from <= now)
            .where(or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now))
        )
        if exclude_user_id is not None:
            query = query.where(RoleAssignment.user_id != exclude_user_id)
        return await self.db.scalar(query) or 0

    async def _check_capacity(self, role: Role, user_id: UUID) -> None:
        """
        Enforce ``max_users``. Callers hold the role row lock, so the count
        and the following write are serialised per role.
        """
        if role.max_users is None:
            return
        holders = await self._count_holders(role.id, exclude_user_id=user_id)
        if holders >= role.max_users:
            raise ConstraintError(
                f"Role '{role.name}' already has the maximum of {role.max_users} holder(s)",
                role=role.name,
                max_users=role.max_users,
            )

    async def _ensure_can_decide(self, grant: RoleAssignment, approver_id: UUID) -> None:
        """Approver must hold an approval permission that reaches the grant's scope."""
        if grant.user_id == approver_id and not self.allow_self_approval:
            logger.warning("Refused self-approval", assignment_id=str(grant.id), user_id=str(approver_id))
            raise ForbiddenError("Users cannot decide their own role assignments")

        if self.authorization is None:
            raise RuntimeError("RBACService needs an AuthorizationService to decide grants")

        scope = grant.scope
        for permission in self.approval_permissions:
            if await self._reaches(approver_id, permission, scope):
                return

        logger.warning(
            "Refused grant decision",
            assignment_id=str(grant.id),
            approver_id=str(approver_id),
        )
        raise ForbiddenError(
            "Approver lacks an approval permission for this scope",
            assignment_id=str(grant.id),
        )

    async def _reaches(self, user_id: UUID, permission: str, scope: Scope) -> bool:
        if isinstance(scope, GlobalScope):
            try:
                decision = await self.authorization.check_permission(user_id, permission)
            except NotFoundError:
                return False
            if not decision.allowed:
                return False
            if decision.scope == DecisionScope.GLOBAL:
                return True
            reach = await self.authorization.accessible_locations(user_id, permission)
            return reach.all

        for location_id in scope.location_ids:
            try:
                decision = await self.authorization.check_permission(user_id, permission, location_id)
            except NotFoundError:
                return False
            if not decision.allowed:
                return False
        return True

    @staticmethod
    def _ensure_pending(grant: RoleAssignment) -> None:
        if not grant.is_active or not grant.is_pending:
            state = grant.approval_status if grant.is_active else "inactive"
            raise ConstraintError(
                f"Only pending grants can be decided (grant is {state})",
                assignment_id=str(grant.id),
            )

    async def _transition(self, grant: RoleAssignment, **values: Any) -> None:
        """Move a pending grant on; fails if another decision got there first."""
        result = await self.db.execute(
            update(RoleAssignment)
            .where(RoleAssignment.id == grant.id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status == ApprovalStatus.PENDING.value)
            .values(**values)
            .returning(RoleAssignment.id)
            .execution_options(synchronize_session=False)
        )
        if result.scalar_one_or_none() is None:
            raise ConstraintError(
                "Grant was decided or revoked concurrently",
                assignment_id=str(grant.id),
            )
        await self.db.refresh(grant)

    async def _clear_other_primaries(self, grant: RoleAssignment) -> None:
        await self.db.execute(
            update(RoleAssignment)
            .where(RoleAssignment.user_id == grant.user_id)
            .where(RoleAssignment.id != grant.id)
            .where(RoleAssignment.is_primary.is_(True))
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )

    async def _sync_primary_role(self, user_id: UUID) -> None:
        """
        Recompute ``User.role`` from live grants.

        The primary grant wins; otherwise the highest-level live role.
        Never read by authorization.
        """
        user = await self.db.get(User, user_id)
        if user is None:
            return

        result = await self.db.execute(
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status == ApprovalStatus.APPROVED.value)
        )
        live = [g for g in result.scalars().all() if g.is_live() and g.role.is_active]

        primary = [g for g in live if g.is_primary]
        candidates = primary or live
        name = None
        if candidates:
            name = max(candidates, key=lambda g: (g.role.level, g.role.name)).role.name

        if user.role != name:
            user.role = name
            await self.db.flush()
