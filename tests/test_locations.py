"""
Tests for the location write path.
"""

from uuid import uuid4

import pytest
import structlog

from welfaredesk.core.exceptions import ConstraintError, NotFoundError, ValidationError
from welfaredesk.extensions.auth.rbac import regions
from welfaredesk.models import LocationType
from welfaredesk.schemas.audit_log import AuditAction, AuditLogFilter
from welfaredesk.schemas.location import LocationCreate
from welfaredesk.services.audit import AuditLogService
from welfaredesk.services.location import LocationService


@pytest.fixture
def locations(db, hierarchy) -> LocationService:
    return LocationService(db, hierarchy)


@pytest.mark.asyncio
async def test_code_is_normalized(locations, tree):
    ward = await locations.create_location(
        LocationCreate(name="  Tirur Ward 3 ", code="tir-3", type="unit", parent_id=tree.area.id)
    )
    assert ward.code == "TIR-3"
    assert ward.name == "Tirur Ward 3"
    assert await locations.get_by_code("tir-3") is ward


@pytest.mark.asyncio
async def test_state_cannot_have_parent(locations, tree):
    with pytest.raises(ValidationError):
        await locations.create_location(
            LocationCreate(name="Tamil Nadu", code="TN", type="state", parent_id=tree.state.id)
        )


@pytest.mark.asyncio
async def test_district_needs_parent(locations):
    with pytest.raises(ValidationError):
        await locations.create_location(LocationCreate(name="Palakkad", code="PKD", type="district"))


@pytest.mark.asyncio
async def test_area_cannot_skip_a_level(locations, tree):
    with pytest.raises(ValidationError) as exc_info:
        await locations.create_location(
            LocationCreate(name="Kottakkal", code="KTK", type="area", parent_id=tree.state.id)
        )
    assert exc_info.value.details["parent_type"] == "state"


@pytest.mark.asyncio
async def test_unknown_parent(locations):
    with pytest.raises(NotFoundError):
        await locations.create_location(
            LocationCreate(name="Nowhere", code="NWH", type="district", parent_id=uuid4())
        )


@pytest.mark.asyncio
async def test_duplicate_code_is_case_insensitive(locations, tree):
    with pytest.raises(ConstraintError):
        await locations.create_location(
            LocationCreate(name="Tirur Again", code="tir", type="area", parent_id=tree.district.id)
        )


@pytest.mark.asyncio
async def test_list_children(locations, tree):
    children = await locations.list_children(tree.district.id)
    assert [c.code for c in children] == ["PON", "TIR"]

    states = await locations.list_children(None)
    assert [s.code for s in states] == ["KL"]


# ============ Moves ============


@pytest.mark.asyncio
async def test_move_changes_reach(locations, auth, grants, user_factory, admin, tree):
    user = await user_factory.create()
    await grants.approved(user, "district_admin", regions(tree.district.id), approver=admin)
    permission = "beneficiaries.read.regional"

    assert (await auth.check_permission(user.id, permission, tree.unit.id)).allowed

    await locations.move_location(tree.area.id, tree.other_district.id)

    assert not (await auth.check_permission(user.id, permission, tree.unit.id)).allowed
    assert (await auth.check_permission(user.id, permission, tree.sibling_unit.id)).allowed

    scope = await auth.accessible_locations(user.id, permission)
    assert tree.area.id not in scope


@pytest.mark.asyncio
async def test_move_beneath_itself_is_rejected(locations, tree):
    with pytest.raises(ValidationError):
        await locations.move_location(tree.district.id, tree.unit.id)


@pytest.mark.asyncio
async def test_move_to_wrong_level_is_rejected(locations, tree):
    with pytest.raises(ValidationError):
        await locations.move_location(tree.unit.id, tree.district.id)


@pytest.mark.asyncio
async def test_move_under_inactive_parent_is_rejected(locations, hierarchy, tree):
    district = await locations.create_location(
        LocationCreate(name="Ottappalam", code="OTD", type=LocationType.DISTRICT, parent_id=tree.state.id)
    )
    await locations.deactivate_location(district.id)

    with pytest.raises(ConstraintError):
        await locations.create_location(
            LocationCreate(name="Shoranur", code="SRR", type=LocationType.AREA, parent_id=district.id)
        )
    with pytest.raises(ConstraintError) as exc_info:
        await locations.move_location(tree.area.id, district.id)

    assert exc_info.value.details["parent_id"] == str(district.id)
    assert (await locations.get(tree.area.id)).parent_id == tree.district.id
    current = await hierarchy.tree()
    assert current.is_within(tree.unit.id, tree.district.id)


@pytest.mark.asyncio
async def test_move_is_audited(db, locations, user_factory, tree):
    mover = await user_factory.create()
    await locations.move_location(tree.sibling_area.id, tree.other_district.id, moved_by=mover.id)

    entries = await AuditLogService(db).list(
        filters=AuditLogFilter(resource_type="location", action=AuditAction.LOCATION_MOVED)
    )
    assert len(entries) == 1
    assert entries[0].actor_id == mover.id
    assert entries[0].changes["parent_id"]["new"] == str(tree.other_district.id)


# ============ Activation ============


@pytest.mark.asyncio
async def test_deactivated_location_stays_in_tree(locations, hierarchy, auth, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "area_admin", regions(tree.area.id))

    await locations.deactivate_location(tree.unit.id)

    assert tree.unit.id in await hierarchy.tree()
    assert (await auth.check_permission(user.id, "beneficiaries.read.regional", tree.unit.id)).allowed
    assert await locations.list_children(tree.area.id) == []
    assert len(await locations.list_children(tree.area.id, include_inactive=True)) == 1


@pytest.mark.asyncio
async def test_inactive_parent_blocks_new_children(locations, tree):
    await locations.deactivate_location(tree.other_area.id)

    with pytest.raises(ConstraintError):
        await locations.create_location(
            LocationCreate(name="Vadakara Ward 9", code="VDK-9", type=LocationType.UNIT, parent_id=tree.other_area.id)
        )


@pytest.mark.asyncio
async def test_activation_needs_active_parent(locations, tree):
    await locations.deactivate_location(tree.other_unit.id)
    await locations.deactivate_location(tree.other_area.id)

    with pytest.raises(ConstraintError):
        await locations.activate_location(tree.other_unit.id)

    await locations.activate_location(tree.other_area.id)
    unit = await locations.activate_location(tree.other_unit.id)
    assert unit.is_active


@pytest.mark.asyncio
async def test_rename(locations, hierarchy, tree):
    await locations.rename_location(tree.unit.id, "Tirur Town")

    current = await hierarchy.tree()
    assert current.path_of(tree.unit.id) == "Kerala > Malappuram > Tirur > Tirur Town"

    with pytest.raises(ValidationError):
        await locations.rename_location(tree.unit.id, "   ")


@pytest.mark.asyncio
async def test_audit_entries_carry_request_id(db, locations, tree):
    with structlog.contextvars.bound_contextvars(request_id="req-42"):
        await locations.rename_location(tree.sibling_unit.id, "Ponnani Town")

    entries = await AuditLogService(db).list(
        filters=AuditLogFilter(resource_id=str(tree.sibling_unit.id), action=AuditAction.UPDATE)
    )
    assert entries[0].request_id == "req-42"
    assert entries[0].changes == {"name": {"old": "Ponnani Ward 1", "new": "Ponnani Town"}}
