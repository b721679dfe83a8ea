"""
Authorization interfaces - Core abstractions.

These define the contracts that every authorization implementation follows.
Callers depend ONLY on these, never on the RBAC implementation.

Two read contracts are exposed to the web layer:
- PolicyEngine.evaluate  -> PolicyDecision       ("check permission")
- ScopeProvider.get_scope -> AccessibleLocations ("accessible locations")
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable
from uuid import UUID


# ============================================================
# POLICY DECISION
# ============================================================

class DecisionScope(str, Enum):
    """Scope restriction that comes with a decision."""

    NONE = "none"          # denied
    GLOBAL = "global"      # permission is unrestricted
    UNSCOPED = "unscoped"  # allowed without a target; caller applies the regional filter
    REGIONAL = "regional"  # target checked against the user's reach
    OWN = "own"            # target checked; caller still restricts to own records


@dataclass(frozen=True)
class PolicyDecision:
    """
    Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted
        scope: Restriction the caller must enforce
        reason: Human-readable explanation (for errors/logging)
        metadata: Additional data (matching grants, etc.)
    """
    allowed: bool
    scope: DecisionScope = DecisionScope.NONE
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(
        cls,
        scope: DecisionScope,
        reason: str | None = None,
        **metadata: Any,
    ) -> "PolicyDecision":
        return cls(allowed=True, scope=scope, reason=reason, metadata=metadata)

    @classmethod
    def deny(cls, reason: str = "Permission denied", **metadata: Any) -> "PolicyDecision":
        return cls(allowed=False, scope=DecisionScope.NONE, reason=reason, metadata=metadata)


# ============================================================
# POLICY ENGINE
# ============================================================

class PolicyEngine(ABC):
    """
    Abstract policy engine interface.

    Decides whether a user holds a permission, optionally at a target
    location.
    """

    @abstractmethod
    async def evaluate(
        self,
        user_id: UUID,
        permission: str,
        target_location_id: UUID | None = None,
        context: dict[str, Any] | None = None,
    ) -> PolicyDecision:
        """
        Evaluate if user holds permission (at target location, if given).

        ``context`` carries request facts (``ip``, ``timestamp``) that
        permission conditions are checked against.

        Returns:
            PolicyDecision; a deny is a normal return, never an exception

        Raises:
            PermissionNameError: malformed permission name
            NotFoundError: unknown permission or target location
            StructuralError: corrupt grant or location data
        """
        pass

    @abstractmethod
    async def get_permissions(self, user_id: UUID) -> set[str]:
        """
        Get every permission the user currently holds through live grants.
        """
        pass


# ============================================================
# DATA SCOPE
# ============================================================

@dataclass(frozen=True)
class AccessibleLocations:
    """
    Locations a user may see for one permission.

    ``all=True`` means "no restriction" and never comes with ids, so callers
    skip filtering entirely instead of enumerating the whole tree.

    Examples:
        AccessibleLocations.everywhere()
        AccessibleLocations.only({district_id, area_id})
        AccessibleLocations.nowhere()
    """
    all: bool = False
    location_ids: frozenset[UUID] = frozenset()

    def __post_init__(self) -> None:
        if self.all and self.location_ids:
            raise ValueError("An unrestricted scope cannot also enumerate locations")

    @classmethod
    def everywhere(cls) -> "AccessibleLocations":
        """No data restrictions."""
        return cls(all=True)

    @classmethod
    def only(cls, location_ids: Iterable[UUID]) -> "AccessibleLocations":
        return cls(all=False, location_ids=frozenset(location_ids))

    @classmethod
    def nowhere(cls) -> "AccessibleLocations":
        return cls(all=False)

    @property
    def is_empty(self) -> bool:
        return not self.all and not self.location_ids

    def __contains__(self, location_id: object) -> bool:
        return self.all or location_id in self.location_ids

    def merge(self, other: "AccessibleLocations") -> "AccessibleLocations":
        if self.all or other.all:
            return AccessibleLocations.everywhere()
        return AccessibleLocations.only(self.location_ids | other.location_ids)


# ============================================================
# SCOPE PROVIDER
# ============================================================

class ScopeProvider(ABC):
    """
    Abstract scope provider interface.

    Determines which locations a user can access and applies the
    matching filter to queries.
    """

    @abstractmethod
    async def get_scope(
        self,
        user_id: UUID,
        permission: str,
        context: dict[str, Any] | None = None,
    ) -> AccessibleLocations:
        """
        Get the locations a user may access for one permission.

        Raises the same errors as PolicyEngine.evaluate.
        """
        pass

    @abstractmethod
    def apply_to_query(
        self,
        query: Any,
        scope: AccessibleLocations,
        column: Any,
    ) -> Any:
        """
        Apply scope filter to a SQLAlchemy query.

        Args:
            query: SQLAlchemy Select statement
            scope: AccessibleLocations to apply
            column: Location id column on the queried model

        Returns:
            Modified query with scope filter applied
        """
        pass


# ============================================================
# CONDITIONS
# ============================================================

class ConditionEvaluator(ABC):
    """
    Evaluates one type of permission condition.

    A permission row may carry ``conditions`` such as
    ``{"time_window": {"start_hour": 9, "end_hour": 18}}``; every entry is
    handed to the evaluator registered under its key after the role and
    location checks have allowed the request. A failed condition is a deny.

    Examples:
        TimeWindowCondition - office hours and working days only
        IpRestrictionCondition - allow and block lists of addresses
    """

    @property
    @abstractmethod
    def condition_type(self) -> str:
        """Unique identifier for this condition type."""
        pass

    def validate(self, expected: Any) -> None:
        """
        Check a configured value when a permission is bootstrapped.

        Raises:
            ValidationError: value can never be evaluated
        """

    @abstractmethod
    async def evaluate(
        self,
        expected: Any,
        user_id: UUID,
        context: dict[str, Any],
    ) -> tuple[bool, str | None]:
        """
        Evaluate the condition.

        Args:
            expected: The value configured on the permission
            user_id: The user being checked
            context: Request facts; ``timestamp`` is always present

        Returns:
            Tuple of (passed: bool, reason: str | None)
        """
        pass
