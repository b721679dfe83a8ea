"""
RBAC Policy Engine.

Answers "may user U use permission P (at location L)?" from the union of
U's live role assignments.

A grant is live while it is active, approved and inside its validity
window. The window is filtered in SQL and then re-checked on every read,
so an expired grant is never honoured even if the expiry sweep has not
run yet.

Decision:
1. Look P up in the catalog (unknown name -> NotFoundError)
2. Keep live grants whose active role carries P
3. None left -> deny
4. P has global scope class -> allow (GLOBAL)
5. No target location -> allow (UNSCOPED); the caller narrows its query
   with the regional filter
7. An allow is turned into a deny when one of P's conditions (time
   window, client address) fails for the request context

Usage:
    # Enable in config:
    AUTH_POLICY_ENGINE=rbac
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from welfaredesk.core.auth.interfaces import (
    ConditionEvaluator,
    DecisionScope,
    PolicyDecision,
    PolicyEngine,
)
from welfaredesk.core.auth.registry import AuthRegistry
from welfaredesk.core.exceptions import StructuralError
from welfaredesk.utils.timezone import utc_now

from .catalog import PermissionCatalog, PermissionInfo
from .hierarchy import LocationHierarchy, LocationTree
from .models import ApprovalStatus, RoleAssignment, ScopeClass
from .scope import GlobalScope

logger = structlog.get_logger()


@AuthRegistry.policy_engine("rbac")
class RBACPolicyEngine(PolicyEngine):
    """
    Role-Based Access Control policy engine over the location hierarchy.

    Holds no per-user state: every check reads grants fresh, so revocations
    and role permission changes apply from the next check on.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: PermissionCatalog,
        hierarchy: LocationHierarchy,
        **kwargs: Any,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.hierarchy = hierarchy
        self._conditions: dict[str, ConditionEvaluator] = {}

    @asynccontextmanager
    async def _session(self, session: AsyncSession | None) -> AsyncIterator[AsyncSession]:
        if session is not None:
            yield session
            return
        async with self.session_factory() as own:
            yield own

    # ============================================================
    # GRANTS
    # ============================================================

    async def active_grants(
        self,
        user_id: UUID,
        session: AsyncSession | None = None,
        now: datetime | None = None,
    ) -> list[RoleAssignment]:
        """
        Live grants of the user, with roles and scope locations loaded.

        Grants of deactivated roles are dropped. A grant whose role row is
        missing raises StructuralError.
        """
        now = now or utc_now()
        query = (
            select(RoleAssignment)
            .where(RoleAssignment.user_id == user_id)
            .where(RoleAssignment.is_active.is_(True))
            .where(RoleAssignment.approval_status == ApprovalStatus.APPROVED.value)
            .where(RoleAssignment.valid_from <= now)
            .where(
                or_(RoleAssignment.valid_until.is_(None), RoleAssignment.valid_until > now)
            )
        )
        async with self._session(session) as db:
            result = await db.execute(query)
            grants = list(result.scalars().all())

        live = []
        for grant in grants:
            # Driver may hand back naive datetimes; re-check in Python
            if not grant.is_live(now):
                continue
            if grant.role is None:
                logger.error(
                    "Grant references a missing role",
                    assignment_id=str(grant.id),
                    role_id=str(grant.role_id),
                )
                raise StructuralError(
                    "Grant references a missing role",
                    assignment_id=str(grant.id),
                )
            if not grant.role.is_active:
                continue
            live.append(grant)
        return live

    # ============================================================
    # EVALUATION
    # ============================================================

    async def evaluate(
        self,
        user_id: UUID,
        permission: str,
        target_location_id: UUID | None = None,
        context: dict[str, Any] | None = None,
        *,
        session: AsyncSession | None = None,
    ) -> PolicyDecision:
        info = self.catalog.find(permission)

        try:
            decision = await self._evaluate(user_id, info, target_location_id, session)
            if decision.allowed and info.conditions:
                failed = await self.check_conditions(user_id, info, context)
                if failed is not None:
                    decision = failed
        except StructuralError as exc:
            logger.error(
                "Authorization check hit corrupt data",
                user_id=str(user_id),
                permission=permission,
                error=exc.message,
                details=exc.details,
            )
            raise

        if decision.allowed and info.audit_required:
            logger.info(
                "Audited permission check",
                user_id=str(user_id),
                permission=permission,
                sensitivity=info.sensitivity,
                scope=decision.scope.value,
                target_location_id=str(target_location_id) if target_location_id else None,
            )
        return decision

    async def _evaluate(
        self,
        user_id: UUID,
        info: PermissionInfo,
        target_location_id: UUID | None,
        session: AsyncSession | None,
    ) -> PolicyDecision:
        tree: LocationTree | None = None
        if target_location_id is not None:
            tree = await self.hierarchy.tree()
            tree.get(target_location_id)

        if not info.is_active:
            return PolicyDecision.deny(f"Permission disabled: {info.name}")

        grants = await self.active_grants(user_id, session)
        carrying = [g for g in grants if info.name in g.role.permission_names]
        if not carrying:
            return PolicyDecision.deny(f"Missing permission: {info.name}")

        grant_ids = [str(g.id) for g in carrying]

        if info.scope_class == ScopeClass.GLOBAL:
            return PolicyDecision.allow(
                DecisionScope.GLOBAL, f"Has permission: {info.name}", grants=grant_ids
            )

        if target_location_id is None:
            return PolicyDecision.allow(
                DecisionScope.UNSCOPED, f"Has permission: {info.name}", grants=grant_ids
            )

        ancestors = set(tree.ancestors_of(target_location_id))

        covering = [
            str(g.id) for g in carrying if self._covers(g, ancestors, tree)
        ]
        if not covering:
            return PolicyDecision.deny(
                f"Permission {info.name} does not reach location {target_location_id}"
            )

        scope = DecisionScope.OWN if info.scope_class == ScopeClass.OWN else DecisionScope.REGIONAL
        return PolicyDecision.allow(scope, f"Has permission: {info.name}", grants=covering)

    async def check_conditions(
        self,
        user_id: UUID,
        info: PermissionInfo,
        context: dict[str, Any] | None = None,
    ) -> PolicyDecision | None:
        """
        Run the permission's conditions against the request context.

        Returns the deny for the first failing condition, or None when all
        pass. ``timestamp`` defaults to now. A condition type with no
        registered evaluator raises StructuralError.
        """
        facts = {"timestamp": utc_now(), **(context or {})}
        for condition_type, expected in (info.conditions or {}).items():
            evaluator = self._condition_evaluator(condition_type)
            passed, reason = await evaluator.evaluate(expected, user_id, facts)
            if not passed:
                logger.info(
                    "Permission condition failed",
                    user_id=str(user_id),
                    permission=info.name,
                    condition=condition_type,
                    reason=reason,
                )
                return PolicyDecision.deny(
                    reason or f"Condition {condition_type} not met",
                    condition=condition_type,
                )
        return None

    def _condition_evaluator(self, condition_type: str) -> ConditionEvaluator:
        evaluator = self._conditions.get(condition_type)
        if evaluator is None:
            if not AuthRegistry.has_condition(condition_type):
                raise StructuralError(
                    "Permission references an unknown condition",
                    condition=condition_type,
                )
            evaluator = AuthRegistry.get_condition_evaluator(condition_type)
            self._conditions[condition_type] = evaluator
        return evaluator

    @staticmethod
    def _covers(grant: RoleAssignment, ancestors: set[UUID], tree: LocationTree) -> bool:
        """A scope covers the target when it holds the target or an ancestor of it."""
        scope = grant.scope
        if isinstance(scope, GlobalScope):
            return True
        for location_id in scope.location_ids:
            if location_id not in tree:
                raise StructuralError(
                    "Grant scope references a missing location",
                    assignment_id=str(grant.id),
                    location_id=str(location_id),
                )
        return not ancestors.isdisjoint(scope.location_ids)

    async def get_permissions(
        self,
        user_id: UUID,
        session: AsyncSession | None = None,
    ) -> set[str]:
        """Get every permission name the user holds through live grants."""
        permissions: set[str] = set()
        for grant in await self.active_grants(user_id, session):
            permissions |= grant.role.permission_names
        return {p for p in permissions if p in self.catalog and self.catalog.find(p).is_active}
