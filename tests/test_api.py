"""
Tests for the HTTP surface: permission dependencies, error mapping and
request tracing.
"""

from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient

from welfaredesk.core.auth import (
    AccessibleLocations,
    PolicyDecision,
    accessible_locations,
    require_all_permissions,
    require_any_permission,
    require_permission,
)
from welfaredesk.core.exceptions import ConstraintError, StructuralError
from welfaredesk.extensions.auth.rbac import regions
from welfaredesk.main import create_app


@pytest_asyncio.fixture
async def client(auth) -> AsyncGenerator[AsyncClient, None]:
    """
    App with a few guarded routes. The X-User-Id header stands in for
    the authentication layer.
    """
    app = create_app(authorization=auth)

    @app.middleware("http")
    async def fake_authentication(request: Request, call_next):
        user_id = request.headers.get("X-User-Id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    @app.get("/locations/{location_id}/beneficiaries")
    async def list_beneficiaries(
        location_id: str,
        decision: PolicyDecision = Depends(
            require_permission("beneficiaries.read.regional", location_param="location_id")
        ),
    ):
        return {"scope": decision.scope.value}

    @app.get("/locations/{location_id}/reports")
    async def list_reports(
        location_id: str,
        decision: PolicyDecision = Depends(
            require_any_permission(
                ["reports.export", "reports.read.regional"], location_param="location_id"
            )
        ),
    ):
        return {"scope": decision.scope.value}

    @app.post("/locations/{location_id}/staff")
    async def add_staff(
        location_id: str,
        decisions: list[PolicyDecision] = Depends(
            require_all_permissions(
                ["users.read.regional", "roles.assign", "users.update.regional"],
                location_param="location_id",
            )
        ),
    ):
        return {"checked": len(decisions)}

    @app.get("/applications")
    async def list_applications(
        scope: AccessibleLocations = Depends(accessible_locations("applications.read.regional")),
    ):
        return {"all": scope.all, "location_ids": sorted(str(i) for i in scope.location_ids)}

    @app.get("/widgets")
    async def list_widgets(decision: PolicyDecision = Depends(require_permission("widgets.read"))):
        return {"scope": decision.scope.value}

    @app.post("/conflict")
    async def conflict():
        raise ConstraintError("Role already granted", role="area_admin")

    @app.get("/corrupt")
    async def corrupt():
        raise StructuralError("Grant has no locations", assignment_id="secret")

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


def as_user(user) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["authorization"] is True


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

    generated = await client.get("/health")
    assert UUID(generated.headers["X-Request-ID"])


@pytest.mark.asyncio
async def test_missing_identity_is_401(client: AsyncClient, tree):
    response = await client.get(f"/locations/{tree.unit.id}/beneficiaries")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_identity_is_401(client: AsyncClient, tree):
    response = await client.get(
        f"/locations/{tree.unit.id}/beneficiaries",
        headers={"X-User-Id": "not-a-uuid"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_allowed_inside_reach(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "area_admin", regions(tree.area.id))

    response = await client.get(f"/locations/{tree.unit.id}/beneficiaries", headers=as_user(user))

    assert response.status_code == 200
    assert response.json() == {"scope": "regional"}


@pytest.mark.asyncio
async def test_denied_outside_reach(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "area_admin", regions(tree.area.id))

    response = await client.get(f"/locations/{tree.other_unit.id}/beneficiaries", headers=as_user(user))

    assert response.status_code == 403
    assert "beneficiaries.read.regional" in response.json()["detail"]


@pytest.mark.asyncio
async def test_malformed_location_is_400(client: AsyncClient, user_factory, catalog):
    user = await user_factory.create()
    response = await client.get("/locations/nowhere/beneficiaries", headers=as_user(user))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_location_is_404(client: AsyncClient, user_factory, tree):
    user = await user_factory.create()
    response = await client.get(f"/locations/{uuid4()}/beneficiaries", headers=as_user(user))

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_unknown_permission_is_404(client: AsyncClient, user_factory, catalog):
    user = await user_factory.create()
    response = await client.get("/widgets", headers=as_user(user))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_accessible_locations_route(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "unit_admin", regions(tree.sibling_unit.id))

    response = await client.get("/applications", headers=as_user(user))

    assert response.status_code == 200
    assert response.json() == {"all": False, "location_ids": [str(tree.sibling_unit.id)]}


@pytest.mark.asyncio
async def test_constraint_error_is_409(client: AsyncClient):
    response = await client.post("/conflict")

    assert response.status_code == 409
    assert response.json() == {
        "error": "constraint_violation",
        "message": "Role already granted",
        "role": "area_admin",
    }


@pytest.mark.asyncio
async def test_structural_error_hides_details(client: AsyncClient):
    response = await client.get("/corrupt")

    assert response.status_code == 500
    assert response.json()["error"] == "structural_error"
    assert "secret" not in response.text


# ============ Multi-permission guards ============


@pytest.mark.asyncio
async def test_any_permission_passes_on_one_match(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "unit_admin", regions(tree.unit.id))

    response = await client.get(f"/locations/{tree.unit.id}/reports", headers=as_user(user))

    assert response.status_code == 200
    assert response.json() == {"scope": "regional"}


@pytest.mark.asyncio
async def test_any_permission_denied_lists_alternatives(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "unit_admin", regions(tree.unit.id))

    response = await client.get(f"/locations/{tree.other_unit.id}/reports", headers=as_user(user))

    assert response.status_code == 403
    assert response.json()["detail"] == "Required permissions: reports.export OR reports.read.regional"


@pytest.mark.asyncio
async def test_all_permissions_pass_when_every_one_is_held(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "area_admin", regions(tree.area.id))

    response = await client.post(f"/locations/{tree.unit.id}/staff", headers=as_user(user))

    assert response.status_code == 200
    assert response.json() == {"checked": 3}


@pytest.mark.asyncio
async def test_all_permissions_denied_lists_missing(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "unit_admin", regions(tree.unit.id))

    response = await client.post(f"/locations/{tree.unit.id}/staff", headers=as_user(user))

    assert response.status_code == 403
    assert response.json()["detail"] == "Missing permissions: roles.assign, users.update.regional"


@pytest.mark.asyncio
async def test_all_permissions_outside_reach(client: AsyncClient, grants, user_factory, tree):
    user = await user_factory.create()
    await grants.create(user, "area_admin", regions(tree.area.id))

    response = await client.post(f"/locations/{tree.other_unit.id}/staff", headers=as_user(user))

    assert response.status_code == 403
    assert response.json()["detail"] == (
        "Missing permissions: users.read.regional, roles.assign, users.update.regional"
    )
