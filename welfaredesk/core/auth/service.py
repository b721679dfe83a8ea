"""
Authorization service - Main facade for authorization.

This is the primary entry point for authorization checks.
Combines a policy engine ("may U do P at L?") and a scope provider
("which locations may U see for P?").

Usage:
    decision = await auth.check_permission(user_id, "beneficiaries.read.regional", area_id)
    if not decision.allowed:
        ...

    query = await auth.scoped_query(
        user_id, select(Beneficiary), Beneficiary.location_id,
        "beneficiaries.read.regional",
    )
"""

from typing import Any
from uuid import UUID

import structlog

from welfaredesk.core.exceptions import ForbiddenError, StructuralError

from .interfaces import (
    AccessibleLocations,
    PolicyDecision,
    PolicyEngine,
    ScopeProvider,
)

logger = structlog.get_logger()


class AuthorizationService:
    """
    Default authorization service implementation.

    Stateless between calls; one instance is shared by every request.
    """

    def __init__(
        self,
        policy_engine: PolicyEngine,
        scope_provider: ScopeProvider,
    ):
        self.policy_engine = policy_engine
        self.scope_provider = scope_provider

    async def check_permission(
        self,
        user_id: UUID,
        permission: str,
        target_location_id: UUID | None = None,
        context: dict[str, Any] | None = None,
    ) -> PolicyDecision:
        """
        Check if user holds permission, optionally at a target location.

        ``context`` carries request facts (``ip``, ``timestamp``) for
        permission conditions.

        Returns:
            PolicyDecision (a deny does not raise)
        """
        return await self.policy_engine.evaluate(user_id, permission, target_location_id, context=context)

    async def accessible_locations(
        self,
        user_id: UUID,
        permission: str,
        context: dict[str, Any] | None = None,
    ) -> AccessibleLocations:
        """Locations the user may access for permission, or the ALL sentinel."""
        return await self.scope_provider.get_scope(user_id, permission, context=context)

    async def authorize_or_raise(
        self,
        user_id: UUID,
        permission: str,
        target_location_id: UUID | None = None,
        context: dict[str, Any] | None = None,
    ) -> PolicyDecision:
        """
        Check authorization or raise ForbiddenError.

        Used to guard administrative mutations.
        """
        decision = await self.check_permission(user_id, permission, target_location_id, context)
        if not decision.allowed:
            logger.warning(
                "Authorization denied",
                user_id=str(user_id),
                permission=permission,
                target_location_id=str(target_location_id) if target_location_id else None,
            )
            raise ForbiddenError(
                decision.reason or "Permission denied",
                permission=permission,
            )
        return decision

    async def can(
        self,
        user_id: UUID,
        permission: str,
        target_location_id: UUID | None = None,
        context: dict[str, Any] | None = None,
    ) -> bool:
        """
        Check if action is allowed (returns bool).

        Corrupt data counts as a deny here. Use check_permission when the
        caller needs to tell "no access" from "system broken".
        """
        try:
            decision = await self.check_permission(user_id, permission, target_location_id, context)
        except StructuralError:
            logger.error(
                "Authorization check failed closed",
                user_id=str(user_id),
                permission=permission,
            )
            return False
        return decision.allowed

    async def scoped_query(
        self,
        user_id: UUID,
        query: Any,
        column: Any,
        permission: str,
        context: dict[str, Any] | None = None,
    ) -> Any:
        """
        Apply user's accessible locations to a query.

        Args:
            user_id: The user
            query: SQLAlchemy Select statement
            column: Location id column to filter on
            permission: Permission that governs the listing

        Returns:
            Query with the location filter applied
        """
        scope = await self.accessible_locations(user_id, permission, context)
        return self.scope_provider.apply_to_query(query, scope, column)

    async def get_permissions(self, user_id: UUID) -> set[str]:
        """Get every permission the user currently holds."""
        return await self.policy_engine.get_permissions(user_id)
