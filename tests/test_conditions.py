"""
Tests for permission conditions: the built-in evaluators, how the engine
and the regional filter apply them, and bootstrap validation.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from welfaredesk.core.auth import AuthRegistry, PolicyDecision, require_permission
from welfaredesk.core.auth.conditions import IpRestrictionCondition, TimeWindowCondition
from welfaredesk.core.exceptions import StructuralError, ValidationError
from welfaredesk.extensions.auth.rbac import (
    Permission,
    PermissionCatalog,
    RBACPolicyEngine,
    ScopeClass,
    bootstrap_permissions,
    regions,
)
from welfaredesk.extensions.auth.rbac.schemas import PermissionDefinition, RoleCreate
from welfaredesk.extensions.auth.rbac.seed import bootstrap_rbac
from welfaredesk.main import create_app

# 2024-01-01 is a Monday; Asia/Kolkata is UTC+05:30
MONDAY_MORNING = datetime(2024, 1, 1, 5, 0, tzinfo=timezone.utc)   # 10:30 IST
MONDAY_LATE = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)     # 17:30 IST
MONDAY_EVENING = datetime(2024, 1, 1, 13, 0, tzinfo=timezone.utc)  # 18:30 IST
SATURDAY_MORNING = datetime(2024, 1, 6, 5, 0, tzinfo=timezone.utc)

CONDITIONED_PERMISSIONS = [
    PermissionDefinition(
        name="payments.disburse",
        scope_class=ScopeClass.REGIONAL,
        conditions={
            "time_window": {
                "start_hour": 9,
                "end_hour": 17,
                "days": ["monday", "tuesday", "wednesday", "thursday", "friday"],
                "timezone": "Asia/Kolkata",
            }
        },
    ),
    PermissionDefinition(
        name="donors.export",
        scope_class=ScopeClass.REGIONAL,
        conditions={"ip_restriction": {"allow": ["10.20.0.0/16"], "block": ["10.20.9.9"]}},
    ),
]


@pytest_asyncio.fixture
async def catalog(db) -> PermissionCatalog:
    """System permissions plus a few carrying conditions."""
    await bootstrap_rbac(db)
    await bootstrap_permissions(db, CONDITIONED_PERMISSIONS)
    await db.commit()
    return await PermissionCatalog.load(db)


@pytest_asyncio.fixture
async def cashier(db, rbac, user_factory, tree):
    """A user holding the conditioned permissions over Tirur."""
    role = await rbac.create_role(
        RoleCreate(
            name="cashier",
            permissions=["payments.disburse", "donors.export", "beneficiaries.read.regional"],
            allowed_location_types=["area"],
        )
    )
    user = await user_factory.create(name="Cashier")
    await rbac.grant_role(user.id, role.id, regions(tree.area.id))
    await db.commit()
    return user


# ============ Evaluators ============


@pytest.mark.asyncio
async def test_time_window_hours_are_inclusive():
    condition = TimeWindowCondition(default_timezone="UTC")
    window = {"start_hour": 9, "end_hour": 17}

    late = datetime(2024, 1, 1, 17, 59, tzinfo=timezone.utc)
    closed = datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc)

    assert await condition.evaluate(window, uuid4(), {"timestamp": late}) == (True, None)
    assert await condition.evaluate(window, uuid4(), {"timestamp": closed}) == (
        False,
        "Outside allowed hours",
    )


@pytest.mark.asyncio
async def test_time_window_days_use_local_time():
    condition = TimeWindowCondition(default_timezone="UTC")

    # Sunday 20:00 UTC is already Monday in Kolkata
    sunday_night = datetime(2023, 12, 31, 20, 0, tzinfo=timezone.utc)
    context = {"timestamp": sunday_night}

    passed, _ = await condition.evaluate({"days": ["monday"], "timezone": "Asia/Kolkata"}, uuid4(), context)
    assert passed

    passed, reason = await condition.evaluate({"days": ["monday"]}, uuid4(), context)
    assert not passed
    assert reason == "Outside allowed days"


@pytest.mark.parametrize(
    "expected",
    [
        ["monday"],
        {"start_hour": 9},
        {"start_hour": 18, "end_hour": 9},
        {"start_hour": 9, "end_hour": 24},
        {"days": ["funday"]},
        {"timezone": "Mars/Olympus_Mons"},
    ],
)
def test_time_window_rejects_bad_configuration(expected):
    with pytest.raises(ValidationError):
        TimeWindowCondition(default_timezone="UTC").validate(expected)


@pytest.mark.asyncio
async def test_ip_restriction_block_list_wins():
    condition = IpRestrictionCondition()
    rule = {"allow": ["10.20.0.0/16"], "block": ["10.20.9.9"]}

    assert await condition.evaluate(rule, uuid4(), {"ip": "10.20.1.5"}) == (True, None)
    assert await condition.evaluate(rule, uuid4(), {"ip": "10.20.9.9"}) == (False, "IP address blocked")
    assert await condition.evaluate(rule, uuid4(), {"ip": "192.168.1.1"}) == (False, "IP address not allowed")


@pytest.mark.asyncio
async def test_ip_restriction_unknown_address():
    condition = IpRestrictionCondition()

    passed, reason = await condition.evaluate({"allow": ["10.0.0.0/8"]}, uuid4(), {})
    assert not passed
    assert reason == "Client address unknown"

    assert await condition.evaluate({"block": ["10.0.0.1"]}, uuid4(), {}) == (True, None)

    passed, _ = await condition.evaluate({"block": ["10.0.0.1"]}, uuid4(), {"ip": "not-an-address"})
    assert not passed


@pytest.mark.parametrize("expected", ["10.0.0.0/8", {"allow": ["10.0.0.0/33"]}, {"block": ["nowhere"]}])
def test_ip_restriction_rejects_bad_configuration(expected):
    with pytest.raises(ValidationError):
        IpRestrictionCondition().validate(expected)


def test_builtin_conditions_are_registered():
    assert {"time_window", "ip_restriction"} <= set(AuthRegistry.list_conditions())
    assert isinstance(AuthRegistry.get_condition_evaluator("ip_restriction"), IpRestrictionCondition)

    with pytest.raises(ValueError):
        AuthRegistry.get_condition_evaluator("moon_phase")


# ============ Engine ============


@pytest.mark.asyncio
async def test_failed_condition_turns_allow_into_deny(auth, cashier, tree):
    async def disburse(when: datetime) -> PolicyDecision:
        return await auth.check_permission(cashier.id, "payments.disburse", tree.unit.id, {"timestamp": when})

    assert (await disburse(MONDAY_MORNING)).allowed
    assert (await disburse(MONDAY_LATE)).allowed

    evening = await disburse(MONDAY_EVENING)
    assert not evening.allowed
    assert evening.reason == "Outside allowed hours"
    assert evening.metadata == {"condition": "time_window"}

    weekend = await disburse(SATURDAY_MORNING)
    assert not weekend.allowed
    assert weekend.reason == "Outside allowed days"


@pytest.mark.asyncio
async def test_conditions_never_grant_on_their_own(auth, cashier, user_factory, tree):
    context = {"timestamp": MONDAY_MORNING}

    outsider = await user_factory.create()
    decision = await auth.check_permission(outsider.id, "payments.disburse", tree.unit.id, context)
    assert not decision.allowed
    assert decision.reason == "Missing permission: payments.disburse"

    # Reach is checked before conditions
    outside_reach = await auth.check_permission(cashier.id, "payments.disburse", tree.other_unit.id, context)
    assert not outside_reach.allowed
    assert "does not reach" in outside_reach.reason


@pytest.mark.asyncio
async def test_ip_condition_reads_request_address(auth, cashier, tree):
    check = auth.check_permission

    assert (await check(cashier.id, "donors.export", tree.unit.id, {"ip": "10.20.1.5"})).allowed
    assert not (await check(cashier.id, "donors.export", tree.unit.id, {"ip": "10.20.9.9"})).allowed
    assert not (await check(cashier.id, "donors.export", tree.unit.id)).allowed


@pytest.mark.asyncio
async def test_unconditioned_permission_ignores_context(auth, cashier, tree):
    context = {"timestamp": MONDAY_EVENING, "ip": "1.2.3.4"}
    decision = await auth.check_permission(cashier.id, "beneficiaries.read.regional", tree.unit.id, context)
    assert decision.allowed


@pytest.mark.asyncio
async def test_regional_filter_honours_conditions(auth, cashier, tree):
    blocked = await auth.accessible_locations(cashier.id, "donors.export", {"ip": "192.168.1.1"})
    assert not blocked.all
    assert blocked.location_ids == frozenset()

    allowed = await auth.accessible_locations(cashier.id, "donors.export", {"ip": "10.20.1.5"})
    assert allowed.location_ids == {tree.area.id, tree.unit.id}


@pytest.mark.asyncio
async def test_unknown_condition_in_data_is_structural(db, session_factory, hierarchy, cashier, tree):
    permission = await db.scalar(select(Permission).where(Permission.name == "payments.disburse"))
    permission.conditions = {"moon_phase": {"phase": "full"}}
    await db.commit()

    engine = RBACPolicyEngine(session_factory, await PermissionCatalog.load(db), hierarchy)

    with pytest.raises(StructuralError):
        await engine.evaluate(cashier.id, "payments.disburse", tree.unit.id)


# ============ Bootstrap ============


@pytest.mark.asyncio
async def test_bootstrap_rejects_unknown_condition(db, catalog):
    with pytest.raises(ValidationError) as exc_info:
        await bootstrap_permissions(
            db, [PermissionDefinition(name="payments.refund", conditions={"moon_phase": {}})]
        )
    assert "time_window" in exc_info.value.details["available"]


@pytest.mark.asyncio
async def test_bootstrap_rejects_bad_condition_config(db, catalog):
    with pytest.raises(ValidationError):
        await bootstrap_permissions(
            db,
            [
                PermissionDefinition(
                    name="payments.refund",
                    conditions={"time_window": {"start_hour": 25, "end_hour": 26}},
                )
            ],
        )


@pytest.mark.asyncio
async def test_catalog_carries_conditions(catalog):
    info = catalog.find("donors.export")
    assert info.conditions == {"ip_restriction": {"allow": ["10.20.0.0/16"], "block": ["10.20.9.9"]}}
    assert catalog.find("beneficiaries.read.regional").conditions is None


# ============ HTTP ============


@pytest.mark.asyncio
async def test_dependency_passes_client_address(auth, cashier, tree):
    app = create_app(authorization=auth)

    @app.middleware("http")
    async def fake_authentication(request: Request, call_next):
        request.state.user_id = request.headers["X-User-Id"]
        return await call_next(request)

    @app.get("/locations/{location_id}/donors/export")
    async def export_donors(
        location_id: str,
        decision: PolicyDecision = Depends(
            require_permission("donors.export", location_param="location_id")
        ),
    ):
        return {"scope": decision.scope.value}

    url = f"/locations/{tree.unit.id}/donors/export"
    headers = {"X-User-Id": str(cashier.id)}

    office = ASGITransport(app=app, client=("10.20.1.5", 4000))
    async with AsyncClient(transport=office, base_url="http://test") as client:
        assert (await client.get(url, headers=headers)).status_code == 200

    outside = ASGITransport(app=app, client=("203.0.113.7", 4000))
    async with AsyncClient(transport=outside, base_url="http://test") as client:
        response = await client.get(url, headers=headers)
        assert response.status_code == 403
