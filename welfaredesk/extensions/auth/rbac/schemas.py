"""RBAC schemas."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from .models import RoleType, ScopeClass, Sensitivity


class PermissionDefinition(BaseModel):
    """A permission as declared in bootstrap data."""

    name: str
    display_name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    scope_class: ScopeClass = ScopeClass.REGIONAL
    sensitivity: Sensitivity = Sensitivity.INTERNAL
    audit_required: bool = False
    is_active: bool = True
    conditions: Optional[dict[str, Any]] = None


class RoleCreate(BaseModel):
    """Schema for creating a role."""

    name: str = Field(min_length=2, max_length=100)
    display_name: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    role_type: RoleType = RoleType.CUSTOM
    level: int = 0
    permissions: list[str] = Field(default_factory=list)

    # Checked against LocationType by the service so a bad value is a
    # domain ValidationError, not a schema error
    allowed_location_types: list[str] = Field(default_factory=list)
    allow_global_scope: bool = False
    allow_multiple_scopes: bool = False
    max_scopes: Optional[int] = Field(default=None, ge=1)

    max_users: Optional[int] = Field(default=None, ge=1)
    requires_approval: bool = False
    is_deletable: bool = True
    is_modifiable: bool = True
    is_default: bool = False


class RoleResponse(BaseModel):
    """Schema for role response."""

    id: UUID
    name: str
    display_name: str
    description: Optional[str]
    role_type: str
    level: int
    permission_names: set[str]
    allowed_location_types: list[str]
    allow_global_scope: bool
    allow_multiple_scopes: bool
    max_scopes: Optional[int]
    max_users: Optional[int]
    requires_approval: bool
    is_deletable: bool
    is_modifiable: bool
    is_active: bool

    model_config = {"from_attributes": True}


class RoleAssignmentResponse(BaseModel):
    """Schema for grant response."""

    id: UUID
    user_id: UUID
    role_id: UUID
    granted_by_id: Optional[UUID]
    scope_kind: str
    location_ids: frozenset[UUID]
    valid_from: datetime
    valid_until: Optional[datetime]
    is_primary: bool
    is_temporary: bool
    approval_status: str
    approved_by_id: Optional[UUID]
    approved_at: Optional[datetime]
    is_active: bool
    deactivation_reason: Optional[str]

    model_config = {"from_attributes": True}
