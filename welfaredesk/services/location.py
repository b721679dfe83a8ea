"""
Location service - the only write path for the location tree.

Usage:
    service = LocationService(db, hierarchy)
    kerala = await service.create_location(LocationCreate(name="Kerala", code="KL", type="state"))
    await service.move_location(tirur.id, new_parent_id=kozhikode.id, moved_by=admin.id)

Unlike the RBAC service, every write here commits: the shared location
tree cache is invalidated right after the commit, before the method
returns, so no check can run against a tree that has already changed on
disk.
"""

from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from welfaredesk.core.exceptions import ConstraintError, NotFoundError, ValidationError
from welfaredesk.extensions.auth.rbac.hierarchy import LocationHierarchy
from welfaredesk.models.location import Location, LocationType
from welfaredesk.schemas.audit_log import AuditAction
from welfaredesk.schemas.location import LocationCreate
from welfaredesk.services.audit import AuditLogService, compute_changes

logger = structlog.get_logger()


class LocationService:
    """Location management service."""

    def __init__(self, db: AsyncSession, hierarchy: LocationHierarchy):
        self.db = db
        self.hierarchy = hierarchy
        self.audit = AuditLogService(db)

    async def get(self, location_id: UUID) -> Location:
        """Get location by ID."""
        location = await self.db.get(Location, location_id)
        if location is None:
            raise NotFoundError("Location not found", location_id=str(location_id))
        return location

    async def get_by_code(self, code: str) -> Location | None:
        """Get location by code (case-insensitive)."""
        result = await self.db.execute(
            select(Location).where(Location.code == code.strip().upper())
        )
        return result.scalar_one_or_none()

    async def list_children(
        self,
        location_id: UUID | None,
        include_inactive: bool = False,
    ) -> list[Location]:
        """Direct children of a location; ``None`` lists the states."""
        if location_id is not None:
            await self.get(location_id)

        query = select(Location).order_by(Location.name)
        if location_id is None:
            query = query.where(Location.parent_id.is_(None))
        else:
            query = query.where(Location.parent_id == location_id)
        if not include_inactive:
            query = query.where(Location.is_active.is_(True))

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def create_location(
        self,
        data: LocationCreate,
        created_by: UUID | None = None,
    ) -> Location:
        """
        Create a location under its parent.

        Raises:
            ValidationError: parent missing or not exactly one level above
            NotFoundError: parent does not exist
            ConstraintError: code already taken or parent inactive
        """
        code = data.code.strip().upper()
        location_type = LocationType(data.type)

        parent = None
        if data.parent_id is not None:
            parent = await self.get(data.parent_id)
            if not parent.is_active:
                raise ConstraintError(
                    f"Parent location '{parent.code}' is inactive",
                    parent_id=str(parent.id),
                )
        self._check_parent(location_type, parent)

        if await self.get_by_code(code) is not None:
            raise ConstraintError(f"Location code '{code}' already exists", code=code)

        location = Location(
            name=data.name.strip(),
            code=code,
            type=location_type.value,
            parent_id=parent.id if parent else None,
            is_active=True,
        )
        self.db.add(location)
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.CREATE,
            resource_type="location",
            resource_id=location.id,
            actor_id=created_by,
            changes={
                "created": {
                    "name": location.name,
                    "code": code,
                    "type": location.type,
                    "parent_id": str(location.parent_id) if location.parent_id else None,
                }
            },
        )
        await self._commit()

        logger.info("Location created", location_id=str(location.id), code=code, type=location.type)
        return location

    async def move_location(
        self,
        location_id: UUID,
        new_parent_id: UUID,
        moved_by: UUID | None = None,
    ) -> Location:
        """
        Re-parent a location. Its subtree moves with it, so every grant
        scoped above the old position stops reaching it and every grant
        above the new position starts to.

        Raises:
            ValidationError: wrong parent type, or the move would create a cycle
            ConstraintError: new parent is inactive
            NotFoundError: location or new parent does not exist
        """
        location = await self.get(location_id)
        parent = await self.get(new_parent_id)

        if await self._is_descendant(parent, location.id):
            raise ValidationError(
                "Cannot move a location beneath itself",
                location_id=str(location.id),
                new_parent_id=str(parent.id),
            )
        if not parent.is_active:
            raise ConstraintError(
                f"Parent location '{parent.code}' is inactive",
                parent_id=str(parent.id),
            )
        self._check_parent(location.location_type, parent)

        old_parent_id = location.parent_id
        if old_parent_id == parent.id:
            return location

        location.parent_id = parent.id
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.LOCATION_MOVED,
            resource_type="location",
            resource_id=location.id,
            actor_id=moved_by,
            changes={"parent_id": {"old": str(old_parent_id), "new": str(parent.id)}},
        )
        await self._commit()

        logger.info(
            "Location moved",
            location_id=str(location.id),
            old_parent_id=str(old_parent_id),
            new_parent_id=str(parent.id),
        )
        return location

    async def rename_location(
        self,
        location_id: UUID,
        name: str,
        renamed_by: UUID | None = None,
    ) -> Location:
        location = await self.get(location_id)
        name = name.strip()
        if not name:
            raise ValidationError("Location name cannot be empty")

        old_name = location.name
        if old_name == name:
            return location

        location.name = name
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.UPDATE,
            resource_type="location",
            resource_id=location.id,
            actor_id=renamed_by,
            changes=compute_changes({"name": old_name}, {"name": name}),
        )
        await self._commit()
        return location

    async def deactivate_location(
        self,
        location_id: UUID,
        deactivated_by: UUID | None = None,
    ) -> Location:
        """
        Soft-deactivate a location.

        It stays in the tree, so existing grants keep their reach, but it
        can no longer be the scope of a new grant or the parent of a new
        location.
        """
        return await self._set_active(location_id, False, deactivated_by)

    async def activate_location(
        self,
        location_id: UUID,
        activated_by: UUID | None = None,
    ) -> Location:
        return await self._set_active(location_id, True, activated_by)

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _check_parent(location_type: LocationType, parent: Location | None) -> None:
        expected = location_type.parent_type
        if expected is None:
            if parent is not None:
                raise ValidationError("A state cannot have a parent location")
            return
        if parent is None:
            raise ValidationError(
                f"A {location_type.value} needs a parent {expected.value}",
                type=location_type.value,
            )
        if parent.type != expected.value:
            raise ValidationError(
                f"A {location_type.value} must sit under a {expected.value}, not a {parent.type}",
                type=location_type.value,
                parent_type=parent.type,
            )

    async def _is_descendant(self, candidate: Location, root_id: UUID) -> bool:
        """Walk up from ``candidate``; True if ``root_id`` is on the way."""
        node: Location | None = candidate
        seen: set[UUID] = set()
        while node is not None:
            if node.id == root_id:
                return True
            if node.id in seen:
                raise ValidationError("Location tree already contains a cycle", location_id=str(node.id))
            seen.add(node.id)
            node = await self.db.get(Location, node.parent_id) if node.parent_id else None
        return False

    async def _set_active(self, location_id: UUID, active: bool, actor_id: UUID | None) -> Location:
        location = await self.get(location_id)
        if location.is_active == active:
            return location

        if active and location.parent_id is not None:
            parent = await self.get(location.parent_id)
            if not parent.is_active:
                raise ConstraintError(
                    f"Parent location '{parent.code}' is inactive",
                    parent_id=str(parent.id),
                )

        location.is_active = active
        await self.db.flush()

        await self.audit.log(
            action=AuditAction.ACTIVATE if active else AuditAction.DEACTIVATE,
            resource_type="location",
            resource_id=location.id,
            actor_id=actor_id,
        )
        await self._commit()

        logger.info(
            "Location activated" if active else "Location deactivated",
            location_id=str(location.id),
        )
        return location

    async def _commit(self) -> None:
        await self.db.commit()
        self.hierarchy.invalidate()
