"""
Role types for store users and platform administrators.

Both role families are totally ordered: a role grants everything the roles
below it grant. Permission checks compare ranks instead of looking up
permission tables keyed by strings.
"""

from enum import Enum
from typing import Union


class StoreRole(str, Enum):
    """Role of a tenant user inside their store."""

    VIEWER = "VIEWER"
    DATA_ENTRY = "DATA_ENTRY"
    STORE_ADMIN = "STORE_ADMIN"


class AdminRole(str, Enum):
    """Role of a platform administrator in the admin console."""

    VIEWER = "VIEWER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


_STORE_RANKS = {
    StoreRole.VIEWER: 0,
    StoreRole.DATA_ENTRY: 1,
    StoreRole.STORE_ADMIN: 2,
}

_ADMIN_RANKS = {
    AdminRole.VIEWER: 0,
    AdminRole.ADMIN: 1,
    AdminRole.SUPER_ADMIN: 2,
}

Role = Union[StoreRole, AdminRole]


def rank(role: Role) -> int:
    if isinstance(role, StoreRole):
        return _STORE_RANKS[role]
    if isinstance(role, AdminRole):
        return _ADMIN_RANKS[role]
    raise TypeError(f"Not a role: {role!r}")


def has_at_least(role: Role, minimum: Role) -> bool:
    """True when ``role`` is ``minimum`` or above it. Roles of different families never compare."""
    if type(role) is not type(minimum):
        raise TypeError(f"Cannot compare {type(role).__name__} with {type(minimum).__name__}")
    return rank(role) >= rank(minimum)


def parse_store_role(value: Union[str, StoreRole]) -> StoreRole:
    """Parse a role name case-insensitively. Raises ValueError for unknown roles."""
    if isinstance(value, StoreRole):
        return value
    return StoreRole(str(value).strip().upper())


def parse_admin_role(value: Union[str, AdminRole]) -> AdminRole:
    if isinstance(value, AdminRole):
        return value
    return AdminRole(str(value).strip().upper())
