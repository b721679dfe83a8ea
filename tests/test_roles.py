"""
Tests for role management.
"""

import pytest

from welfaredesk.core.exceptions import (
    ConstraintError,
    ForbiddenError,
    NotFoundError,
    PermissionNameError,
    ValidationError,
)
from welfaredesk.extensions.auth.rbac import regions
from welfaredesk.extensions.auth.rbac.schemas import RoleCreate


@pytest.mark.asyncio
async def test_create_role(rbac):
    role = await rbac.create_role(
        RoleCreate(
            name="block_coordinator",
            description="Coordinates a block of areas",
            permissions=["beneficiaries.read.regional", "applications.read.regional"],
            allowed_location_types=["area"],
            allow_multiple_scopes=True,
            max_scopes=4,
        )
    )

    assert role.display_name == "Block Coordinator"
    assert role.permission_names == {"beneficiaries.read.regional", "applications.read.regional"}
    assert role.allowed_location_types == ["area"]
    assert not role.is_system
    assert await rbac.get_role_by_name("block_coordinator") is role


@pytest.mark.asyncio
async def test_create_role_unknown_permission(rbac):
    with pytest.raises(ValidationError) as exc_info:
        await rbac.create_role(
            RoleCreate(
                name="confused",
                permissions=["beneficiaries.read.regional", "widgets.polish"],
                allowed_location_types=["area"],
            )
        )
    assert exc_info.value.details["permissions"] == ["widgets.polish"]


@pytest.mark.asyncio
async def test_create_role_malformed_permission(rbac):
    with pytest.raises(PermissionNameError):
        await rbac.create_role(
            RoleCreate(name="confused", permissions=["Beneficiaries"], allowed_location_types=["area"])
        )


@pytest.mark.asyncio
async def test_create_role_unknown_location_type(rbac):
    with pytest.raises(ValidationError):
        await rbac.create_role(
            RoleCreate(name="village_head", permissions=["reports.read"], allowed_location_types=["village"])
        )


@pytest.mark.asyncio
async def test_create_role_that_can_never_be_granted(rbac):
    with pytest.raises(ValidationError):
        await rbac.create_role(RoleCreate(name="nowhere_role", permissions=["reports.read"]))


@pytest.mark.asyncio
async def test_create_role_duplicate_name(rbac):
    with pytest.raises(ConstraintError):
        await rbac.create_role(
            RoleCreate(name="area_admin", permissions=["reports.read"], allowed_location_types=["area"])
        )


@pytest.mark.asyncio
async def test_get_role_not_found(rbac):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await rbac.get_role(uuid4())


@pytest.mark.asyncio
async def test_list_roles_most_privileged_first(rbac):
    names = [r.name for r in await rbac.list_roles()]
    assert names[:3] == ["super_admin", "state_admin", "district_admin"]
    assert names[-1] == "beneficiary"


# ============ Permission updates ============


@pytest.mark.asyncio
async def test_update_role_permissions(rbac):
    role = await rbac.get_role_by_name("unit_admin")
    updated = await rbac.update_role_permissions(role.id, ["reports.read.regional", "locations.read"])
    assert updated.permission_names == {"reports.read.regional", "locations.read"}


@pytest.mark.asyncio
async def test_non_modifiable_role_is_forbidden_and_unchanged(rbac):
    role = await rbac.get_role_by_name("super_admin")
    before = set(role.permission_names)

    with pytest.raises(ForbiddenError):
        await rbac.update_role_permissions(role.id, ["reports.read"])

    again = await rbac.get_role(role.id)
    assert again.permission_names == before


@pytest.mark.asyncio
async def test_update_with_unknown_permission_leaves_role_alone(rbac):
    role = await rbac.get_role_by_name("area_admin")
    before = set(role.permission_names)

    with pytest.raises(ValidationError):
        await rbac.update_role_permissions(role.id, ["reports.read", "widgets.polish"])

    assert role.permission_names == before


# ============ Deletion ============


@pytest.mark.asyncio
async def test_delete_role_deactivates(rbac):
    role = await rbac.create_role(
        RoleCreate(name="short_lived", permissions=["reports.read"], allowed_location_types=["unit"])
    )
    deleted = await rbac.delete_role(role.id)

    assert deleted.is_active is False
    assert "short_lived" not in {r.name for r in await rbac.list_roles()}
    assert "short_lived" in {r.name for r in await rbac.list_roles(include_inactive=True)}


@pytest.mark.asyncio
async def test_system_role_cannot_be_deleted(rbac):
    role = await rbac.get_role_by_name("state_admin")
    with pytest.raises(ForbiddenError):
        await rbac.delete_role(role.id)


@pytest.mark.asyncio
async def test_role_in_use_cannot_be_deleted(rbac, user_factory, tree):
    role = await rbac.create_role(
        RoleCreate(name="ward_helper", permissions=["reports.read"], allowed_location_types=["unit"])
    )
    user = await user_factory.create()
    grant = await rbac.grant_role(user.id, role.id, regions(tree.unit.id))

    with pytest.raises(ConstraintError):
        await rbac.delete_role(role.id)

    await rbac.revoke_grant(grant.id)
    assert (await rbac.delete_role(role.id)).is_active is False
