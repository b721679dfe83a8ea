"""
System permissions and roles.

Run once per deployment (and again after editing this file):

    python -m welfaredesk.extensions.auth.rbac.seed

Re-running is safe: permissions and system roles are matched by name and
updated in place.
"""

import asyncio
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from welfaredesk.core.config import settings
from welfaredesk.core.logging import configure_logging

from .catalog import bootstrap_permissions
from .models import Permission, Role, RoleType, ScopeClass, Sensitivity
from .schemas import PermissionDefinition

logger = structlog.get_logger()

G, R, O = ScopeClass.GLOBAL, ScopeClass.REGIONAL, ScopeClass.OWN
PUB, INT, CON, RES, TOP = (
    Sensitivity.PUBLIC,
    Sensitivity.INTERNAL,
    Sensitivity.CONFIDENTIAL,
    Sensitivity.RESTRICTED,
    Sensitivity.TOP_SECRET,
)

# name, display name, scope class, sensitivity, audit required
_PERMISSIONS: list[tuple[str, str, ScopeClass, Sensitivity, bool]] = [
    # Users
    ("users.create", "Create Users", R, CON, False),
    ("users.read.all", "View All Users", G, INT, False),
    ("users.read.regional", "View Regional Users", R, INT, False),
    ("users.read.own", "View Own Profile", O, PUB, False),
    ("users.update.all", "Update All Users", G, RES, False),
    ("users.update.regional", "Update Regional Users", R, CON, False),
    ("users.update.own", "Update Own Profile", O, PUB, False),
    ("users.delete", "Delete Users", R, RES, True),
    # Roles and permissions
    ("roles.create", "Create Roles", G, RES, False),
    ("roles.read", "View Roles", G, INT, False),
    ("roles.update", "Update Roles", G, RES, False),
    ("roles.delete", "Delete Roles", G, RES, True),
    ("roles.assign", "Assign Roles", R, CON, False),
    ("roles.approve", "Approve Role Assignments", R, RES, True),
    ("permissions.read", "View Permissions", G, INT, False),
    ("permissions.manage", "Manage Permissions", G, TOP, False),
    # Beneficiaries
    ("beneficiaries.create", "Create Beneficiaries", R, INT, False),
    ("beneficiaries.read.all", "View All Beneficiaries", G, CON, False),
    ("beneficiaries.read.regional", "View Regional Beneficiaries", R, INT, False),
    ("beneficiaries.read.own", "View Own Beneficiary Profile", O, PUB, False),
    ("beneficiaries.update.regional", "Update Regional Beneficiaries", R, INT, False),
    ("beneficiaries.update.own", "Update Own Beneficiary Profile", O, PUB, False),
    # Applications
    ("applications.create", "Create Applications", O, INT, False),
    ("applications.read.all", "View All Applications", G, CON, False),
    ("applications.read.regional", "View Regional Applications", R, INT, False),
    ("applications.read.own", "View Own Applications", O, PUB, False),
    ("applications.update.regional", "Update Regional Applications", R, INT, False),
    ("applications.approve", "Approve Applications", R, CON, True),
    # Projects
    ("projects.create", "Create Projects", G, CON, False),
    ("projects.read.all", "View All Projects", G, INT, False),
    ("projects.read.assigned", "View Assigned Projects", R, INT, False),
    ("projects.update.all", "Update All Projects", G, CON, False),
    ("projects.update.assigned", "Update Assigned Projects", R, INT, False),
    ("projects.manage", "Manage Projects", G, RES, False),
    # Schemes
    ("schemes.create", "Create Schemes", G, CON, False),
    ("schemes.read.all", "View All Schemes", G, INT, False),
    ("schemes.read.assigned", "View Assigned Schemes", R, INT, False),
    ("schemes.update.assigned", "Update Assigned Schemes", R, INT, False),
    ("schemes.manage", "Manage Schemes", G, RES, False),
    # Reports
    ("reports.read", "View Reports", R, INT, False),
    ("reports.create", "Create Reports", R, INT, False),
    ("reports.update", "Update Reports", R, INT, False),
    ("reports.delete", "Delete Reports", R, INT, False),
    ("reports.read.all", "View All Reports", G, CON, False),
    ("reports.read.regional", "View Regional Reports", R, INT, False),
    ("reports.export", "Export Reports", R, CON, True),
    # Finances
    ("finances.read.all", "View All Financial Data", G, RES, False),
    ("finances.read.regional", "View Regional Financial Data", R, CON, False),
    ("finances.manage", "Manage Finances", G, TOP, True),
    # Donors and donations
    ("donors.create", "Create Donors", R, INT, False),
    ("donors.read", "View Donors", R, INT, False),
    ("donors.read.regional", "View Regional Donors", R, INT, False),
    ("donors.read.all", "View All Donors", G, CON, False),
    ("donors.update.regional", "Update Regional Donors", R, INT, False),
    ("donors.delete", "Delete Donors", R, CON, True),
    ("donors.verify", "Verify Donors", R, CON, True),
    ("donations.create", "Record Donations", R, INT, False),
    ("donations.read.all", "View All Donations", G, CON, False),
    ("donations.read.regional", "View Regional Donations", R, INT, False),
    ("donations.update.regional", "Update Regional Donations", R, CON, False),
    # Communications
    ("communications.send", "Send Communications", R, INT, True),
    # Settings and audit
    ("settings.read", "View System Settings", G, INT, False),
    ("settings.update", "Update System Settings", G, TOP, True),
    ("audit.read", "View Audit Logs", G, RES, True),
    # Forms
    ("forms.create", "Create Forms", G, CON, False),
    ("forms.read", "View Forms", G, INT, False),
    ("forms.update", "Update Forms", G, CON, False),
    ("forms.delete", "Delete Forms", G, RES, True),
    ("forms.manage", "Manage Forms", G, RES, False),
    # Locations
    ("locations.create", "Create Locations", G, INT, False),
    ("locations.read", "View Locations", G, PUB, False),
    ("locations.update", "Update Locations", G, INT, False),
    ("locations.delete", "Delete Locations", G, CON, True),
    # Dashboard
    ("dashboard.read.all", "View All Dashboard Data", G, INT, False),
    ("dashboard.read.regional", "View Regional Dashboard", R, INT, False),
    # System
    ("system.debug", "System Debugging", G, TOP, False),
    ("system.monitor", "System Monitoring", G, RES, False),
    # Documents
    ("documents.create", "Create Documents", R, INT, False),
    ("documents.read.all", "View All Documents", G, CON, False),
    ("documents.read.regional", "View Regional Documents", R, INT, False),
    ("documents.update", "Update Documents", R, INT, False),
    ("documents.delete", "Delete Documents", R, CON, True),
    # Interviews
    ("interviews.schedule", "Schedule Interviews", R, INT, False),
    ("interviews.read", "View Interviews", R, INT, False),
    ("interviews.update", "Update Interviews", R, INT, False),
    ("interviews.cancel", "Cancel Interviews", R, INT, True),
]

SYSTEM_PERMISSIONS: list[PermissionDefinition] = [
    PermissionDefinition(
        name=name,
        display_name=display_name,
        category=name.split(".")[1],
        scope_class=scope_class,
        sensitivity=sensitivity,
        audit_required=audit_required,
    )
    for name, display_name, scope_class, sensitivity, audit_required in _PERMISSIONS
]

_DISTRICT_PERMISSIONS = [
    "users.create", "users.read.regional", "users.update.regional",
    "roles.read", "roles.assign", "roles.approve",
    "beneficiaries.create", "beneficiaries.read.regional", "beneficiaries.update.regional",
    "applications.read.regional", "applications.update.regional", "applications.approve",
    "projects.read.all", "projects.read.assigned",
    "schemes.read.all", "schemes.read.assigned",
    "reports.read.regional", "reports.export",
    "finances.read.regional",
    "donors.create", "donors.read", "donors.read.regional", "donors.update.regional", "donors.verify",
    "donations.create", "donations.read.regional", "donations.update.regional",
    "communications.send",
    "dashboard.read.regional",
    "locations.read",
]

_AREA_PERMISSIONS = [
    "users.create", "users.read.regional", "users.update.regional",
    "roles.read", "roles.assign",
    "beneficiaries.create", "beneficiaries.read.regional", "beneficiaries.update.regional",
    "applications.read.regional", "applications.update.regional", "applications.approve",
    "projects.read.assigned",
    "schemes.read.assigned",
    "reports.read.regional",
    "donors.create", "donors.read", "donors.read.regional", "donors.update.regional",
    "donations.create", "donations.read.regional", "donations.update.regional",
    "communications.send",
    "dashboard.read.regional",
    "locations.read",
]

_UNIT_PERMISSIONS = [
    "users.read.regional",
    "roles.read",
    "beneficiaries.create", "beneficiaries.read.regional", "beneficiaries.update.regional",
    "applications.read.regional", "applications.update.regional", "applications.approve",
    "projects.read.assigned",
    "schemes.read.assigned",
    "reports.read.regional",
    "dashboard.read.regional",
    "locations.read",
]

_BENEFICIARY_PERMISSIONS = [
    "users.read.own", "users.update.own",
    "beneficiaries.read.own", "beneficiaries.update.own",
    "applications.create", "applications.read.own",
    "projects.read.assigned",
    "schemes.read.assigned",
]

# Everything except what only super admins may touch
_STATE_PERMISSIONS = [
    p[0] for p in _PERMISSIONS
    if p[0] not in {"system.debug", "system.monitor", "permissions.manage", "settings.update"}
]

ALL_PERMISSIONS = "*"

SYSTEM_ROLES: list[dict[str, Any]] = [
    {
        "name": "super_admin",
        "display_name": "Super Administrator",
        "description": "Full system access with all permissions",
        "level": 100,
        "allowed_location_types": [],
        "allow_global_scope": True,
        "allow_multiple_scopes": False,
        "max_scopes": None,
        "max_users": 5,
        "requires_approval": True,
        "is_deletable": False,
        "is_modifiable": False,
        "permissions": ALL_PERMISSIONS,
    },
    {
        "name": "state_admin",
        "display_name": "State Administrator",
        "description": "State-level administrative access",
        "level": 90,
        "allowed_location_types": ["state"],
        "allow_global_scope": True,
        "allow_multiple_scopes": False,
        "max_scopes": 1,
        "max_users": 10,
        "requires_approval": True,
        "is_deletable": False,
        "is_modifiable": True,
        "permissions": _STATE_PERMISSIONS,
    },
    {
        "name": "district_admin",
        "display_name": "District Administrator",
        "description": "District-level administrative access",
        "level": 80,
        "allowed_location_types": ["district"],
        "allow_multiple_scopes": True,
        "max_scopes": 5,
        "max_users": 50,
        "requires_approval": True,
        "permissions": _DISTRICT_PERMISSIONS,
    },
    {
        "name": "area_admin",
        "display_name": "Area Administrator",
        "description": "Area-level administrative access",
        "level": 70,
        "allowed_location_types": ["area"],
        "allow_multiple_scopes": True,
        "max_scopes": 10,
        "max_users": 100,
        "requires_approval": False,
        "permissions": _AREA_PERMISSIONS,
    },
    {
        "name": "unit_admin",
        "display_name": "Unit Administrator",
        "description": "Unit-level administrative access",
        "level": 60,
        "allowed_location_types": ["unit"],
        "allow_multiple_scopes": True,
        "max_scopes": 20,
        "max_users": 500,
        "requires_approval": False,
        "permissions": _UNIT_PERMISSIONS,
    },
    {
        "name": "beneficiary",
        "display_name": "Beneficiary",
        "description": "End user with access to own data and applications",
        "level": 10,
        "allowed_location_types": ["unit"],
        "allow_multiple_scopes": False,
        "max_scopes": 1,
        "max_users": None,
        "requires_approval": False,
        "is_modifiable": False,
        "is_default": True,
        "permissions": _BENEFICIARY_PERMISSIONS,
    },
]


async def bootstrap_roles(
    session: AsyncSession,
    definitions: list[dict[str, Any]] | None = None,
) -> list[Role]:
    """
    Create or refresh system roles by name.

    System roles bypass the modifiable flag here: that flag guards
    runtime administration, not the shipped definitions.
    """
    definitions = definitions if definitions is not None else SYSTEM_ROLES

    result = await session.execute(select(Permission))
    permissions = {p.name: p for p in result.scalars().all()}

    roles: list[Role] = []
    for definition in definitions:
        data = dict(definition)
        wanted = data.pop("permissions")
        if wanted == ALL_PERMISSIONS:
            role_permissions = list(permissions.values())
        else:
            missing = [n for n in wanted if n not in permissions]
            if missing:
                raise ValueError(f"System role '{data['name']}' references unknown permissions: {missing}")
            role_permissions = [permissions[n] for n in wanted]

        existing = await session.execute(select(Role).where(Role.name == data["name"]))
        role = existing.scalar_one_or_none()
        if role is None:
            role = Role(role_type=RoleType.SYSTEM.value, is_active=True, **data)
            session.add(role)
        else:
            for key, value in data.items():
                setattr(role, key, value)
        role.permissions = role_permissions
        roles.append(role)

    await session.flush()
    logger.info("System roles bootstrapped", roles=[r.name for r in roles])
    return roles


async def bootstrap_rbac(session: AsyncSession) -> None:
    """Seed permissions then system roles. Flushes; the caller commits."""
    await bootstrap_permissions(session, SYSTEM_PERMISSIONS)
    await bootstrap_roles(session)


async def main() -> None:
    from welfaredesk.models.database import async_session_factory, close_db

    configure_logging(settings)
    async with async_session_factory() as session:
        await bootstrap_rbac(session)
        await session.commit()
    await close_db()


if __name__ == "__main__":
    asyncio.run(main())
