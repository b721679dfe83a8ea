"""
Built-in condition evaluators.

Conditions live on the permission row and apply to every holder:

    PermissionDefinition(
        name="finances.approve",
        conditions={
            "time_window": {"start_hour": 9, "end_hour": 18, "days": ["monday", "friday"]},
            "ip_restriction": {"allow": ["10.20.0.0/16"], "block": ["10.20.9.9"]},
        },
    )
"""

import ipaddress
from datetime import datetime
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from welfaredesk.core.config import settings
from welfaredesk.core.exceptions import ValidationError

from ..interfaces import ConditionEvaluator
from ..registry import AuthRegistry

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


@AuthRegistry.condition("time_window")
class TimeWindowCondition(ConditionEvaluator):
    """
    Allow only inside a daily window and on listed days.

    Usage:
        conditions={"time_window": {"start_hour": 9, "end_hour": 17}}
        conditions={"time_window": {"days": ["saturday"], "timezone": "UTC"}}

    Both hours are inclusive, so 9..17 allows 17:59 and refuses 18:00.
    Without ``timezone`` the check uses AUTH_CONDITION_TIMEZONE.
    """

    condition_type = "time_window"

    def __init__(self, default_timezone: str | None = None, **kwargs: Any):
        self.default_timezone = default_timezone or settings.auth.condition_timezone

    def validate(self, expected: Any) -> None:
        if not isinstance(expected, dict):
            raise ValidationError("time_window must be a mapping", condition=self.condition_type)

        start = expected.get("start_hour")
        end = expected.get("end_hour")
        if (start is None) != (end is None):
            raise ValidationError("time_window needs both start_hour and end_hour", condition=self.condition_type)
        if start is not None:
            if not all(isinstance(h, int) and 0 <= h <= 23 for h in (start, end)):
                raise ValidationError("time_window hours must be 0-23", condition=self.condition_type)
            if start > end:
                raise ValidationError("time_window start_hour is after end_hour", condition=self.condition_type)

        unknown = [d for d in expected.get("days") or [] if d not in DAY_NAMES]
        if unknown:
            raise ValidationError(f"time_window has unknown days: {unknown}", condition=self.condition_type)

        self._zone(expected)

    async def evaluate(
        self,
        expected: Any,
        user_id: UUID,
        context: dict[str, Any],
    ) -> tuple[bool, str | None]:
        timestamp: datetime = context["timestamp"]
        local = timestamp.astimezone(self._zone(expected))

        start = expected.get("start_hour")
        end = expected.get("end_hour")
        if start is not None and not start <= local.hour <= end:
            return False, "Outside allowed hours"

        days = expected.get("days")
        if days and DAY_NAMES[local.weekday()] not in days:
            return False, "Outside allowed days"

        return True, None

    def _zone(self, expected: dict[str, Any]) -> ZoneInfo:
        name = expected.get("timezone") or self.default_timezone
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone '{name}'", condition=self.condition_type)


@AuthRegistry.condition("ip_restriction")
class IpRestrictionCondition(ConditionEvaluator):
    """
    Allow or block client addresses.

    Usage:
        conditions={"ip_restriction": {"allow": ["10.0.0.0/8"]}}
        conditions={"ip_restriction": {"block": ["203.0.113.7"]}}

    Entries are single addresses or networks. The block list wins. When
    the client address is unknown an allow list refuses and a block list
    lets the request through.
    """

    condition_type = "ip_restriction"

    def __init__(self, **kwargs: Any):
        pass

    def validate(self, expected: Any) -> None:
        if not isinstance(expected, dict):
            raise ValidationError("ip_restriction must be a mapping", condition=self.condition_type)
        for key in ("allow", "block"):
            self._networks(expected.get(key))

    async def evaluate(
        self,
        expected: Any,
        user_id: UUID,
        context: dict[str, Any],
    ) -> tuple[bool, str | None]:
        allowed = self._networks(expected.get("allow"))
        blocked = self._networks(expected.get("block"))

        raw = context.get("ip")
        if raw is None:
            if allowed:
                return False, "Client address unknown"
            return True, None

        try:
            address = ipaddress.ip_address(raw)
        except ValueError:
            return False, "Client address unreadable"

        if any(address in network for network in blocked):
            return False, "IP address blocked"
        if allowed and not any(address in network for network in allowed):
            return False, "IP address not allowed"
        return True, None

    def _networks(self, entries: Any) -> list[ipaddress.IPv4Network | ipaddress.IPv6Network]:
        if not entries:
            return []
        try:
            return [ipaddress.ip_network(entry, strict=False) for entry in entries]
        except (TypeError, ValueError):
            raise ValidationError("ip_restriction entries must be addresses or networks", condition=self.condition_type)
