"""
Condition evaluators for permission rows.

Built-in conditions:
- time_window: allowed hours of the day and days of the week
- ip_restriction: allow and block lists of client addresses

Add custom conditions with the @AuthRegistry.condition decorator.
"""

from .builtin import IpRestrictionCondition, TimeWindowCondition

__all__ = [
    "IpRestrictionCondition",
    "TimeWindowCondition",
]
