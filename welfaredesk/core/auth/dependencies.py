"""
FastAPI dependencies for authorization.

The authentication layer (out of scope here) is expected to put the
verified user id on ``request.state.user_id`` before these run.

Usage:
    from welfaredesk.core.auth import require_permission, accessible_locations

    @router.get("/areas/{location_id}/beneficiaries")
    async def list_beneficiaries(
        decision: PolicyDecision = Depends(
            require_permission("beneficiaries.read.regional", location_param="location_id")
        ),
    ):
        ...

    @router.get("/applications")
    async def list_applications(
        scope: AccessibleLocations = Depends(accessible_locations("applications.read.regional")),
    ):
        query = select(Application)
        if not scope.all:
            query = query.where(Application.location_id.in_(scope.location_ids))
"""

from typing import Annotated, Any, Callable
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status

from welfaredesk.utils.timezone import utc_now

from .interfaces import AccessibleLocations, PolicyDecision, PolicyEngine, ScopeProvider
from .registry import AuthRegistry
from .service import AuthorizationService


# ============================================================
# COMPONENT FACTORIES
# ============================================================

def build_authorization_service(
    policy_engine_name: str,
    scope_provider_name: str,
    **components: Any,
) -> AuthorizationService:
    """
    Build the authorization facade from registered components.

    ``components`` (session_factory, catalog, hierarchy) are handed to both
    constructors; names come from AUTH_POLICY_ENGINE / AUTH_SCOPE_PROVIDER.
    """
    policy_engine: PolicyEngine = AuthRegistry.get_policy_engine(policy_engine_name, **components)
    scope_provider: ScopeProvider = AuthRegistry.get_scope_provider(scope_provider_name, **components)
    return AuthorizationService(policy_engine=policy_engine, scope_provider=scope_provider)


def get_authorization_service(request: Request) -> AuthorizationService:
    """The process-wide service installed on app.state at startup."""
    service = getattr(request.app.state, "authorization", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authorization engine not initialised",
        )
    return service


# ============================================================
# USER DEPENDENCIES
# ============================================================

async def get_current_user_id(request: Request) -> UUID:
    """
    Get the id of the already-authenticated caller.

    Raises:
        HTTPException 401: If no identity was established
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    if isinstance(user_id, UUID):
        return user_id
    try:
        return UUID(str(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid identity",
        )


# ============================================================
# PERMISSION DEPENDENCIES
# ============================================================

def _location_from_request(request: Request, param: str) -> UUID | None:
    raw = request.path_params.get(param) or request.query_params.get(param)
    if not raw:
        return None
    try:
        return UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {param}")


def _request_context(request: Request) -> dict[str, Any]:
    """Request facts that permission conditions are checked against."""
    return {
        "ip": request.client.host if request.client else None,
        "timestamp": utc_now(),
    }


def require_permission(
    permission: str,
    location_param: str | None = None,
) -> Callable:
    """
    Dependency factory for checking a permission.

    When ``location_param`` names a path or query parameter, the check is
    made against that location; otherwise it is unscoped and the handler
    should narrow its query with ``accessible_locations``.
    """

    async def check_permission(
        request: Request,
        user_id: UUID = Depends(get_current_user_id),
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> PolicyDecision:
        target = _location_from_request(request, location_param) if location_param else None

        decision = await auth.check_permission(user_id, permission, target, _request_context(request))

        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}",
            )

        return decision

    return check_permission


def require_any_permission(
    permissions: list[str],
    location_param: str | None = None,
) -> Callable:
    """
    Dependency factory passing when the user holds at least one of
    ``permissions``. Returns the first allowing decision.
    """

    async def check_any_permission(
        request: Request,
        user_id: UUID = Depends(get_current_user_id),
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> PolicyDecision:
        target = _location_from_request(request, location_param) if location_param else None
        context = _request_context(request)

        for permission in permissions:
            decision = await auth.check_permission(user_id, permission, target, context)
            if decision.allowed:
                return decision

        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Required permissions: {' OR '.join(permissions)}",
        )

    return check_any_permission


def require_all_permissions(
    permissions: list[str],
    location_param: str | None = None,
) -> Callable:
    """
    Dependency factory passing only when the user holds every one of
    ``permissions``. Every permission is checked so the 403 lists all
    that are missing.
    """

    async def check_all_permissions(
        request: Request,
        user_id: UUID = Depends(get_current_user_id),
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> list[PolicyDecision]:
        target = _location_from_request(request, location_param) if location_param else None
        context = _request_context(request)

        decisions = []
        missing = []
        for permission in permissions:
            decision = await auth.check_permission(user_id, permission, target, context)
            decisions.append(decision)
            if not decision.allowed:
                missing.append(permission)

        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )

        return decisions

    return check_all_permissions


def accessible_locations(permission: str) -> Callable:
    """Dependency factory returning the caller's accessible locations."""

    async def get_accessible_locations(
        request: Request,
        user_id: UUID = Depends(get_current_user_id),
        auth: AuthorizationService = Depends(get_authorization_service),
    ) -> AccessibleLocations:
        return await auth.accessible_locations(user_id, permission, _request_context(request))

    return get_accessible_locations


# ============================================================
# TYPE ALIASES FOR CLEAN SIGNATURES
# ============================================================

CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]

Authorize = Annotated[AuthorizationService, Depends(get_authorization_service)]
