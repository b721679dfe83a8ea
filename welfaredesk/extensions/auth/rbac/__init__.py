"""
RBAC (Role-Based Access Control) over the location hierarchy.

Importing this package registers the "rbac" policy engine and the
"regional" scope provider with AuthRegistry.

1. Enable in config (these are the defaults):
   AUTH_POLICY_ENGINE=rbac
   AUTH_SCOPE_PROVIDER=regional

2. Seed the system permissions and roles:
   python -m welfaredesk.extensions.auth.rbac.seed

3. Grant roles through RBACService:
   await service.grant_role(user.id, district_admin.id, regions(malappuram.id))

Models:
- Permission: ``<resource>.<action>[.<qualifier>]`` with a scope class
- Role: Named bundle of permissions plus grant rules
- RoleAssignment: User holds role at a scope for a validity window
"""

from .models import (
    ApprovalStatus,
    DeactivationReason,
    Permission,
    Role,
    RoleAssignment,
    RoleType,
    ScopeClass,
    Sensitivity,
)
from .scope import GLOBAL, GlobalScope, RegionScope, Scope, regions
from .catalog import PermissionCatalog, PermissionInfo, bootstrap_permissions, parse_permission_name
from .hierarchy import LocationHierarchy, LocationNode, LocationTree
from .engine import RBACPolicyEngine
from .filters import RegionalScopeProvider
from .service import RBACService

__all__ = [
    # Models
    "ApprovalStatus",
    "DeactivationReason",
    "Permission",
    "Role",
    "RoleAssignment",
    "RoleType",
    "ScopeClass",
    "Sensitivity",
    # Scope
    "GLOBAL",
    "GlobalScope",
    "RegionScope",
    "Scope",
    "regions",
    # Catalog
    "PermissionCatalog",
    "PermissionInfo",
    "bootstrap_permissions",
    "parse_permission_name",
    # Hierarchy
    "LocationHierarchy",
    "LocationNode",
    "LocationTree",
    # Components
    "RBACPolicyEngine",
    "RegionalScopeProvider",
    "RBACService",
]
