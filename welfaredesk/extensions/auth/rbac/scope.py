"""
Grant scope - where a role assignment applies.

A scope is either ``GlobalScope`` (no location restriction) or
``RegionScope`` (one or more concrete locations and everything beneath
them). "Unrestricted" has to be asked for by name; an empty region list
is rejected instead of silently meaning "everywhere".

Usage:
    await service.grant_role(user.id, area_admin.id, regions(area_a.id, area_b.id))
    await service.grant_role(user.id, super_admin.id, GLOBAL)
"""

from dataclasses import dataclass
from typing import Iterable, Union
from uuid import UUID

from welfaredesk.core.exceptions import ValidationError

SCOPE_GLOBAL = "global"
SCOPE_REGIONS = "regions"


@dataclass(frozen=True)
class GlobalScope:
    """Applies everywhere."""

    kind = SCOPE_GLOBAL

    def __str__(self) -> str:
        return "global"


@dataclass(frozen=True)
class RegionScope:
    """Applies to the subtrees rooted at ``location_ids``."""

    location_ids: frozenset[UUID]
    kind = SCOPE_REGIONS

    def __post_init__(self) -> None:
        if not self.location_ids:
            raise ValidationError("A region scope needs at least one location; use GLOBAL for no restriction")

    def __str__(self) -> str:
        return "regions(" + ", ".join(sorted(str(i) for i in self.location_ids)) + ")"


Scope = Union[GlobalScope, RegionScope]

GLOBAL = GlobalScope()


def regions(*location_ids: UUID | Iterable[UUID]) -> RegionScope:
    """
    Build a RegionScope from ids or iterables of ids.

    Raises:
        ValidationError: no ids were given
    """
    ids: set[UUID] = set()
    for item in location_ids:
        if isinstance(item, UUID):
            ids.add(item)
        else:
            ids.update(item)
    return RegionScope(frozenset(ids))
