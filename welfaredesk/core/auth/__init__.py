"""
Authorization module.

Level 1: Guard a route with a permission
----------------------------------------
    from welfaredesk.core.auth import require_permission

    @router.get("/districts/{location_id}/reports")
    async def handler(decision=Depends(require_permission("reports.read", "location_id"))):
        ...

Level 1b: Guard a route with several permissions
----------------------------------------------
    @router.post("/applications/{location_id}/decision")
    async def handler(decision=Depends(require_any_permission(
        ["applications.approve", "applications.reject"], "location_id",
    ))):
        ...

Level 2: Scope a listing to the caller's regions
------------------------------------------------
    @router.get("/beneficiaries")
    async def handler(user_id: CurrentUserId, auth: Authorize):
        query = await auth.scoped_query(
            user_id, select(Beneficiary), Beneficiary.location_id,
            "beneficiaries.read.regional",
        )

Configuration:
==============
- AUTH_POLICY_ENGINE: "rbac" (default)
- AUTH_SCOPE_PROVIDER: "regional" (default)

Extensibility:
=============
    @AuthRegistry.policy_engine("custom")
    class CustomPolicyEngine(PolicyEngine):
        ...

    @AuthRegistry.condition("office_network")
    class OfficeNetworkCondition(ConditionEvaluator):
        ...
"""

from .interfaces import (
    AccessibleLocations,
    ConditionEvaluator,
    DecisionScope,
    PolicyDecision,
    PolicyEngine,
    ScopeProvider,
)
from .registry import AuthRegistry
from .service import AuthorizationService
# Registers the built-in conditions
from . import conditions  # noqa: F401
from .dependencies import (
    Authorize,
    CurrentUserId,
    accessible_locations,
    build_authorization_service,
    get_authorization_service,
    get_current_user_id,
    require_all_permissions,
    require_any_permission,
    require_permission,
)

__all__ = [
    # Interfaces
    "AccessibleLocations",
    "ConditionEvaluator",
    "DecisionScope",
    "PolicyDecision",
    "PolicyEngine",
    "ScopeProvider",
    # Registry
    "AuthRegistry",
    # Service
    "AuthorizationService",
    # Dependencies
    "Authorize",
    "CurrentUserId",
    "accessible_locations",
    "build_authorization_service",
    "get_authorization_service",
    "get_current_user_id",
    "require_all_permissions",
    "require_any_permission",
    "require_permission",
]
