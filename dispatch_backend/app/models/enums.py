"""
User roles enumeration.

Defines the role types for the ride dispatch system.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Supreme user with system-level access
        DISPATCHER: Creates, shares and assigns rides on behalf of customers
        DRIVER: Claims shared rides and progresses assigned rides
        CLIENT: Customer requesting rides
    """
    ADMIN = "admin"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"
    CLIENT = "client"


PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.DISPATCHER})


def enum_values(enum_cls) -> list:
    """Persist enum *values* (lowercase wire names) instead of member names."""
    return [member.value for member in enum_cls]
