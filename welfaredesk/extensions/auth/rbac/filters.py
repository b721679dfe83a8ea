"""
Regional filter - which locations a user may see for one permission.

    scope = await provider.get_scope(user_id, "applications.read.regional")
    query = provider.apply_to_query(select(Application), scope, Application.location_id)

The result is either the ALL sentinel (some qualifying grant is global)
or the union of the subtrees of every qualifying grant's scope locations.
It is never both. A permission whose conditions fail for the request
context sees nothing.

Usage:
    # Enable in config:
    AUTH_SCOPE_PROVIDER=regional
"""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import false
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from welfaredesk.core.auth.interfaces import AccessibleLocations, ScopeProvider
from welfaredesk.core.auth.registry import AuthRegistry
from welfaredesk.core.exceptions import StructuralError

from .catalog import PermissionCatalog
from .engine import RBACPolicyEngine
from .hierarchy import LocationHierarchy
from .scope import GlobalScope

logger = structlog.get_logger()


@AuthRegistry.scope_provider("regional")
class RegionalScopeProvider(ScopeProvider):
    """Scope provider backed by role assignments and the location tree."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog: PermissionCatalog,
        hierarchy: LocationHierarchy,
        **kwargs: Any,
    ):
        self.catalog = catalog
        self.hierarchy = hierarchy
        self.engine = RBACPolicyEngine(session_factory, catalog, hierarchy)

    async def get_scope(
        self,
        user_id: UUID,
        permission: str,
        context: dict[str, Any] | None = None,
        *,
        session: AsyncSession | None = None,
    ) -> AccessibleLocations:
        info = self.catalog.find(permission)
        if not info.is_active:
            return AccessibleLocations.nowhere()

        grants = [
            g for g in await self.engine.active_grants(user_id, session)
            if info.name in g.role.permission_names
        ]
        if not grants:
            return AccessibleLocations.nowhere()

        if info.conditions and await self.engine.check_conditions(user_id, info, context) is not None:
            return AccessibleLocations.nowhere()

        try:
            scopes = [(g, g.scope) for g in grants]
            if any(isinstance(scope, GlobalScope) for _, scope in scopes):
                return AccessibleLocations.everywhere()

            tree = await self.hierarchy.tree()
            reach: set[UUID] = set()
            for grant, scope in scopes:
                for location_id in scope.location_ids:
                    if location_id not in tree:
                        raise StructuralError(
                            "Grant scope references a missing location",
                            assignment_id=str(grant.id),
                            location_id=str(location_id),
                        )
                reach |= tree.reach_of(scope.location_ids)
        except StructuralError as exc:
            logger.error(
                "Regional filter hit corrupt data",
                user_id=str(user_id),
                permission=permission,
                error=exc.message,
                details=exc.details,
            )
            raise

        return AccessibleLocations.only(reach)

    def apply_to_query(
        self,
        query: Any,
        scope: AccessibleLocations,
        column: Any,
    ) -> Any:
        """
        Restrict ``query`` to rows whose ``column`` is an accessible location.

        ALL leaves the query untouched; an empty set matches nothing.
        """
        if scope.all:
            return query
        if not scope.location_ids:
            return query.where(false())
        return query.where(column.in_(scope.location_ids))
