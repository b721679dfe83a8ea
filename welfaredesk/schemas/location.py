"""
Location schemas.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from welfaredesk.models.location import LocationType


class LocationCreate(BaseModel):
    """Location creation schema."""
    name: str = Field(min_length=1, max_length=255)
    code: str = Field(min_length=1, max_length=20)
    type: LocationType
    parent_id: UUID | None = None


class LocationResponse(BaseModel):
    """Location response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    code: str
    type: str
    parent_id: UUID | None = None
    is_active: bool
    created_at: datetime
