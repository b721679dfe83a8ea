"""
Location hierarchy - in-memory tree used for scope resolution.

The whole tree is small and changes rarely, so it is loaded once into an
immutable ``LocationTree`` and shared by every check. Any write to the
locations table must call ``LocationHierarchy.invalidate()`` before the
write is reported as done (``LocationService`` does this).

Usage:
    hierarchy = LocationHierarchy(async_session_factory)
    tree = await hierarchy.tree()
    tree.ancestors_of(area_id)     # [state_id, district_id, area_id]
    tree.descendants_of(district_id)  # {district_id, area..., unit...}
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from welfaredesk.core.exceptions import NotFoundError, StructuralError
from welfaredesk.models.location import Location, LocationType

logger = structlog.get_logger()


@dataclass(frozen=True)
class LocationNode:
    id: UUID
    name: str
    code: str
    type: LocationType
    parent_id: UUID | None
    is_active: bool = True


class LocationTree:
    """
    Immutable snapshot of the location tree.

    Building one validates the whole structure: every parent exists, every
    parent is exactly one level above its child and only states are roots.
    Because depth strictly grows from parent to child, a tree that passes
    these checks cannot contain a cycle.
    """

    def __init__(self, nodes: Iterable[LocationNode]):
        self._nodes: dict[UUID, LocationNode] = {n.id: n for n in nodes}
        self._children: dict[UUID, list[UUID]] = {node_id: [] for node_id in self._nodes}
        self._descendants: dict[UUID, frozenset[UUID]] = {}

        for node in self._nodes.values():
            self._validate(node)
            if node.parent_id is not None:
                self._children[node.parent_id].append(node.id)

    @classmethod
    def from_rows(cls, rows: Iterable[Any]) -> "LocationTree":
        """Build from Location models or rows with the same attributes."""
        nodes = []
        for row in rows:
            try:
                location_type = LocationType(row.type)
            except ValueError:
                logger.error("Unknown location type", location_id=str(row.id), type=row.type)
                raise StructuralError(
                    f"Location {row.id} has unknown type '{row.type}'",
                    location_id=str(row.id),
                )
            nodes.append(
                LocationNode(
                    id=row.id,
                    name=row.name,
                    code=row.code,
                    type=location_type,
                    parent_id=row.parent_id,
                    is_active=row.is_active,
                )
            )
        return cls(nodes)

    def _validate(self, node: LocationNode) -> None:
        expected_parent = node.type.parent_type

        if node.parent_id is None:
            if expected_parent is not None:
                self._structural(node, f"{node.type.value} location has no parent")
            return

        if node.parent_id == node.id:
            self._structural(node, "Location is its own parent")

        parent = self._nodes.get(node.parent_id)
        if parent is None:
            self._structural(node, "Parent location does not exist")
        if expected_parent is None:
            self._structural(node, "State location cannot have a parent")
        if parent.type != expected_parent:
            self._structural(
                node,
                f"{node.type.value} location is under a {parent.type.value}, "
                f"expected a {expected_parent.value}",
            )

    @staticmethod
    def _structural(node: LocationNode, message: str) -> None:
        logger.error("Malformed location tree", location_id=str(node.id), error=message)
        raise StructuralError(message, location_id=str(node.id))

    # ============================================================
    # LOOKUPS
    # ============================================================

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._nodes

    def get(self, location_id: UUID) -> LocationNode:
        node = self._nodes.get(location_id)
        if node is None:
            raise NotFoundError("Location not found", location_id=str(location_id))
        return node

    def children_of(self, location_id: UUID) -> list[LocationNode]:
        self.get(location_id)
        return [self._nodes[c] for c in self._children[location_id]]

    def ancestors_of(self, location_id: UUID) -> list[UUID]:
        """Ordered ids from the root state down to ``location_id`` itself."""
        chain = []
        node: LocationNode | None = self.get(location_id)
        while node is not None:
            chain.append(node.id)
            if len(chain) > len(LocationType.values()):
                self._structural(node, "Ancestor chain is deeper than the hierarchy")
            node = self._nodes.get(node.parent_id) if node.parent_id else None
        chain.reverse()
        return chain

    def descendants_of(self, location_id: UUID) -> frozenset[UUID]:
        """Ids of ``location_id`` and everything beneath it."""
        cached = self._descendants.get(location_id)
        if cached is not None:
            return cached

        self.get(location_id)
        found = {location_id}
        queue = deque([location_id])
        while queue:
            current = queue.popleft()
            for child in self._children[current]:
                if child not in found:
                    found.add(child)
                    queue.append(child)

        result = frozenset(found)
        self._descendants[location_id] = result
        return result

    def reach_of(self, location_ids: Iterable[UUID]) -> frozenset[UUID]:
        """Union of the subtrees rooted at each id."""
        reach: set[UUID] = set()
        for location_id in location_ids:
            reach |= self.descendants_of(location_id)
        return frozenset(reach)

    def is_within(self, target_id: UUID, root_id: UUID) -> bool:
        """True if ``target_id`` is ``root_id`` or beneath it."""
        return root_id in self.ancestors_of(target_id)

    def path_of(self, location_id: UUID, separator: str = " > ") -> str:
        """Human readable path, e.g. ``Kerala > Malappuram > Tirur``."""
        return separator.join(self._nodes[i].name for i in self.ancestors_of(location_id))

    def subtree(self, location_id: UUID) -> dict[str, Any]:
        """Nested dict of the subtree, for admin views."""
        node = self.get(location_id)
        return {
            "id": str(node.id),
            "name": node.name,
            "code": node.code,
            "type": node.type.value,
            "is_active": node.is_active,
            "children": [self.subtree(c) for c in self._children[location_id]],
        }


class LocationHierarchy:
    """
    Process-wide read-through cache of the location tree.

    Loads lazily on first use. ``invalidate()`` is synchronous and bumps a
    generation counter, so a load that started before the invalidation
    hands its result to its own caller but never installs it as the
    cached tree.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache_enabled: bool = True,
    ):
        self.session_factory = session_factory
        self.cache_enabled = cache_enabled
        self._tree: LocationTree | None = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    async def tree(self) -> LocationTree:
        """Current tree, loading it if nothing is cached."""
        tree = self._tree
        if tree is not None:
            return tree

        generation = self._generation
        tree = await self._load()
        if self.cache_enabled and generation == self._generation:
            self._tree = tree
        return tree

    def invalidate(self) -> None:
        """Drop the cached tree; the next check reloads it."""
        self._generation += 1
        self._tree = None
        logger.debug("Location tree invalidated", generation=self._generation)

    async def _load(self) -> LocationTree:
        async with self.session_factory() as session:
            result = await session.execute(select(Location))
            rows = result.scalars().all()
        tree = LocationTree.from_rows(rows)
        logger.debug("Location tree loaded", locations=len(tree))
        return tree
