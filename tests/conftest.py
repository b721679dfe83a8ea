"""
Pytest fixtures for testing.

Provides:
- A fresh SQLite database file per test (engine components open their
  own sessions, so the database must be shared across connections)
- Seeded permission catalog and system roles
- A small location tree built through LocationService
- The policy engine, scope provider, authorization facade and RBACService
- Factory fixtures for users, locations and grants
"""

from types import SimpleNamespace
from typing import AsyncGenerator
from uuid import uuid4

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from welfaredesk.core.auth import AuthorizationService, build_authorization_service
from welfaredesk.extensions.auth.rbac import (
    GLOBAL,
    LocationHierarchy,
    PermissionCatalog,
    RBACPolicyEngine,
    RBACService,
    RegionalScopeProvider,
    Role,
    RoleAssignment,
    Scope,
)
from welfaredesk.extensions.auth.rbac.schemas import RoleCreate
from welfaredesk.extensions.auth.rbac.seed import bootstrap_rbac
from welfaredesk.models import Base, Location, LocationType, User
from welfaredesk.models.database import build_session_factory
from welfaredesk.schemas.location import LocationCreate
from welfaredesk.services.location import LocationService


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'welfaredesk.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session used by the test and the administrative services."""
    async with session_factory() as session:
        yield session


# ============ Authorization components ============


@pytest_asyncio.fixture
async def catalog(db: AsyncSession) -> PermissionCatalog:
    """System permissions and roles, seeded and committed."""
    await bootstrap_rbac(db)
    await db.commit()
    return await PermissionCatalog.load(db)


@pytest_asyncio.fixture
async def hierarchy(session_factory) -> LocationHierarchy:
    return LocationHierarchy(session_factory)


@pytest_asyncio.fixture
async def engine(session_factory, catalog, hierarchy) -> RBACPolicyEngine:
    return RBACPolicyEngine(session_factory, catalog, hierarchy)


@pytest_asyncio.fixture
async def provider(session_factory, catalog, hierarchy) -> RegionalScopeProvider:
    return RegionalScopeProvider(session_factory, catalog, hierarchy)


@pytest_asyncio.fixture
async def auth(session_factory, catalog, hierarchy) -> AuthorizationService:
    return build_authorization_service(
        "rbac",
        "regional",
        session_factory=session_factory,
        catalog=catalog,
        hierarchy=hierarchy,
    )


@pytest_asyncio.fixture
async def rbac(db: AsyncSession, auth: AuthorizationService) -> RBACService:
    return RBACService(db, authorization=auth, allow_self_approval=False)


# ============ Factory Fixtures ============


class UserFactory:
    """Factory for creating test users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, name: str = "Test User", email: str | None = None) -> User:
        user = User(
            name=name,
            email=email or f"test-{uuid4().hex[:8]}@example.org",
            is_active=True,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user


class LocationFactory:
    """Factory for creating locations through the real write path."""

    def __init__(self, db: AsyncSession, hierarchy: LocationHierarchy):
        self.service = LocationService(db, hierarchy)

    async def create(
        self,
        name: str,
        code: str,
        type: LocationType,
        parent: Location | None = None,
    ) -> Location:
        return await self.service.create_location(
            LocationCreate(
                name=name,
                code=code,
                type=type,
                parent_id=parent.id if parent else None,
            )
        )


class GrantFactory:
    """Grants roles by name and commits, so engine sessions see the result."""

    def __init__(self, db: AsyncSession, rbac: RBACService):
        self.db = db
        self.rbac = rbac

    async def role(self, name: str) -> Role:
        role = await self.rbac.get_role_by_name(name)
        assert role is not None, f"role {name} not seeded"
        return role

    async def create(self, user: User, role_name: str, scope: Scope, **kwargs) -> RoleAssignment:
        role = await self.role(role_name)
        grant = await self.rbac.grant_role(user.id, role.id, scope, **kwargs)
        await self.db.commit()
        return grant

    async def approved(
        self,
        user: User,
        role_name: str,
        scope: Scope,
        approver: User,
        **kwargs,
    ) -> RoleAssignment:
        grant = await self.create(user, role_name, scope, **kwargs)
        if grant.is_pending:
            await self.rbac.approve_grant(grant.id, approver.id)
            await self.db.commit()
        return grant


@pytest_asyncio.fixture
async def user_factory(db: AsyncSession) -> UserFactory:
    return UserFactory(db)


@pytest_asyncio.fixture
async def location_factory(db: AsyncSession, hierarchy: LocationHierarchy) -> LocationFactory:
    return LocationFactory(db, hierarchy)


@pytest_asyncio.fixture
async def grants(db: AsyncSession, rbac: RBACService) -> GrantFactory:
    return GrantFactory(db, rbac)


@pytest_asyncio.fixture
async def tree(location_factory: LocationFactory) -> SimpleNamespace:
    """
    Kerala
    ├── Malappuram
    │   ├── Tirur ── Tirur Ward 1
    │   └── Ponnani ── Ponnani Ward 1
    └── Kozhikode
        └── Vadakara ── Vadakara Ward 1
    """
    make = location_factory.create
    state = await make("Kerala", "KL", LocationType.STATE)
    district = await make("Malappuram", "MLP", LocationType.DISTRICT, state)
    area = await make("Tirur", "TIR", LocationType.AREA, district)
    unit = await make("Tirur Ward 1", "TIR-1", LocationType.UNIT, area)
    sibling_area = await make("Ponnani", "PON", LocationType.AREA, district)
    sibling_unit = await make("Ponnani Ward 1", "PON-1", LocationType.UNIT, sibling_area)
    other_district = await make("Kozhikode", "KKD", LocationType.DISTRICT, state)
    other_area = await make("Vadakara", "VDK", LocationType.AREA, other_district)
    other_unit = await make("Vadakara Ward 1", "VDK-1", LocationType.UNIT, other_area)
    return SimpleNamespace(
        state=state,
        district=district,
        area=area,
        unit=unit,
        sibling_area=sibling_area,
        sibling_unit=sibling_unit,
        other_district=other_district,
        other_area=other_area,
        other_unit=other_unit,
    )


@pytest_asyncio.fixture
async def admin(db: AsyncSession, rbac: RBACService, user_factory: UserFactory) -> User:
    """A user who may approve grants anywhere."""
    user = await user_factory.create(name="Root Admin")
    role = await rbac.create_role(
        RoleCreate(
            name="root_admin",
            level=95,
            permissions=["roles.approve", "roles.assign", "roles.update"],
            allow_global_scope=True,
        )
    )
    await rbac.grant_role(user.id, role.id, GLOBAL)
    await db.commit()
    return user
