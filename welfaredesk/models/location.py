"""
Location model - the administrative region tree.

    state
      └── district
            └── area
                  └── unit

Every non-state location points at a parent exactly one level above it.
Locations are soft-deactivated, never deleted.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, StandardMixin


class LocationType(str, Enum):
    """Hierarchy levels, ordered from the root down."""

    STATE = "state"
    DISTRICT = "district"
    AREA = "area"
    UNIT = "unit"

    @property
    def depth(self) -> int:
        return _ORDER.index(self)

    @property
    def parent_type(self) -> "LocationType | None":
        """Type a parent must have, or None for the root level."""
        if self.depth == 0:
            return None
        return _ORDER[self.depth - 1]

    @property
    def child_type(self) -> "LocationType | None":
        if self.depth == len(_ORDER) - 1:
            return None
        return _ORDER[self.depth + 1]

    @classmethod
    def values(cls) -> list[str]:
        return [t.value for t in _ORDER]


_ORDER = [LocationType.STATE, LocationType.DISTRICT, LocationType.AREA, LocationType.UNIT]


class Location(Base, StandardMixin):
    """Administrative region."""

    __tablename__ = "locations"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("locations.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    @property
    def location_type(self) -> LocationType:
        return LocationType(self.type)

    def __repr__(self) -> str:
        return f"<Location {self.type}:{self.code}>"
