"""
Permission catalog.

The catalog is written only at bootstrap (``bootstrap_permissions``) and
read everywhere else through an immutable ``PermissionCatalog`` snapshot
that is built once per process and injected into the policy engine.

Usage:
    async with async_session_factory() as session:
        await bootstrap_permissions(session, SYSTEM_PERMISSIONS)
        await session.commit()
        catalog = await PermissionCatalog.load(session)

    info = catalog.find("beneficiaries.read.regional")
    catalog.list_by_module("beneficiaries")
"""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator
from uuid import UUID

import structlog
from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from welfaredesk.core.auth.registry import AuthRegistry
from welfaredesk.core.exceptions import (
    ConstraintError,
    NotFoundError,
    PermissionNameError,
    ValidationError,
)

from .models import Permission, ScopeClass, role_permissions
from .schemas import PermissionDefinition

logger = structlog.get_logger()

PERMISSION_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*\.[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)?$")


@dataclass(frozen=True)
class ParsedPermissionName:
    resource: str
    action: str
    qualifier: str | None


def parse_permission_name(name: str) -> ParsedPermissionName:
    """
    Split ``<resource>.<action>[.<qualifier>]``.

    Raises:
        PermissionNameError: name is not in that format
    """
    if not isinstance(name, str) or not PERMISSION_NAME_RE.match(name):
        raise PermissionNameError(f"Malformed permission name: {name!r}", permission=str(name))
    parts = name.split(".")
    return ParsedPermissionName(
        resource=parts[0],
        action=parts[1],
        qualifier=parts[2] if len(parts) == 3 else None,
    )


@dataclass(frozen=True)
class PermissionInfo:
    """Read-only view of a permission row."""

    id: UUID
    name: str
    display_name: str
    resource: str
    action: str
    scope_class: ScopeClass
    sensitivity: str
    audit_required: bool
    is_active: bool
    category: str | None = None
    description: str | None = None
    conditions: dict[str, Any] | None = field(default=None, hash=False, compare=False)

    @classmethod
    def from_model(cls, permission: Permission) -> "PermissionInfo":
        return cls(
            id=permission.id,
            name=permission.name,
            display_name=permission.display_name,
            resource=permission.resource,
            action=permission.action,
            scope_class=ScopeClass(permission.scope_class),
            sensitivity=permission.sensitivity,
            audit_required=permission.audit_required,
            is_active=permission.is_active,
            category=permission.category,
            description=permission.description,
            conditions=permission.conditions or None,
        )


class PermissionCatalog:
    """
    Immutable-after-load registry of permissions, keyed by name.

    Call ``reload`` after re-running bootstrap; the previous snapshot stays
    valid for anyone already holding it.
    """

    def __init__(self, permissions: Iterable[PermissionInfo] = ()):
        self._by_name: dict[str, PermissionInfo] = {p.name: p for p in permissions}

    @classmethod
    async def load(cls, session: AsyncSession) -> "PermissionCatalog":
        result = await session.execute(select(Permission).order_by(Permission.name))
        catalog = cls(PermissionInfo.from_model(p) for p in result.scalars().all())
        logger.debug("Permission catalog loaded", permissions=len(catalog))
        return catalog

    async def reload(self, session: AsyncSession) -> "PermissionCatalog":
        return await PermissionCatalog.load(session)

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[PermissionInfo]:
        return iter(self._by_name.values())

    def names(self) -> set[str]:
        return set(self._by_name)

    def find(self, name: str) -> PermissionInfo:
        """
        Look up a permission by name.

        Raises:
            PermissionNameError: malformed name
            NotFoundError: well-formed but not in the catalog
        """
        parse_permission_name(name)
        info = self._by_name.get(name)
        if info is None:
            raise NotFoundError(f"Unknown permission: {name}", permission=name)
        return info

    def list_by_module(self, resource: str) -> list[PermissionInfo]:
        return [p for p in self._by_name.values() if p.resource == resource]


# ============================================================
# BOOTSTRAP
# ============================================================

def validate_conditions(name: str, conditions: dict[str, Any] | None) -> None:
    """
    Check every condition against its registered evaluator.

    Raises:
        ValidationError: unknown condition type or bad configuration
    """
    for condition_type, expected in (conditions or {}).items():
        if not AuthRegistry.has_condition(condition_type):
            raise ValidationError(
                f"Unknown condition type '{condition_type}' on permission '{name}'",
                permission=name,
                available=AuthRegistry.list_conditions(),
            )
        AuthRegistry.get_condition_evaluator(condition_type).validate(expected)


async def bootstrap_permissions(
    session: AsyncSession,
    definitions: Iterable[PermissionDefinition],
) -> list[Permission]:
    """
    Upsert permission definitions by name.

    Re-running with the same names updates descriptive fields in place.
    Changing what a permission *means* (resource, action, scope class) is
    refused once any role references it.

    Flushes; the caller commits.
    """
    wanted = {d.name: d for d in definitions}
    result = await session.execute(select(Permission).where(Permission.name.in_(wanted)))
    existing = {p.name: p for p in result.scalars().all()}

    saved: list[Permission] = []
    created = updated = 0
    for name, definition in wanted.items():
        parsed = parse_permission_name(name)
        validate_conditions(name, definition.conditions)
        permission = existing.get(name)

        if permission is None:
            permission = Permission(
                name=name,
                resource=parsed.resource,
                action=parsed.action,
                scope_class=definition.scope_class.value,
            )
            session.add(permission)
            created += 1
        else:
            meaning_changed = (
                permission.resource != parsed.resource
                or permission.action != parsed.action
                or permission.scope_class != definition.scope_class.value
            )
            if meaning_changed:
                in_use = await session.scalar(
                    select(exists().where(role_permissions.c.permission_id == permission.id))
                )
                if in_use:
                    raise ConstraintError(
                        f"Permission '{name}' is referenced by a role and cannot change scope",
                        permission=name,
                    )
                permission.resource = parsed.resource
                permission.action = parsed.action
                permission.scope_class = definition.scope_class.value
            updated += 1

        permission.display_name = definition.display_name or name
        permission.description = definition.description
        permission.category = definition.category
        permission.sensitivity = definition.sensitivity.value
        permission.audit_required = definition.audit_required
        permission.is_active = definition.is_active
        permission.conditions = definition.conditions or None
        saved.append(permission)

    await session.flush()
    logger.info("Permissions bootstrapped", created=created, updated=updated)
    return saved
