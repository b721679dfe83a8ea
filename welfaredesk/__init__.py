"""
WelfareDesk authorization engine.

Hierarchical role/permission model over the state > district > area > unit
location tree.
"""

__version__ = "0.1.0"
