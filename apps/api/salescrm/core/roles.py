"""Static role hierarchy.

Roles form a closed enumeration with a total order expressed as integer
levels. Security decisions compare levels or enum members, never raw role
strings.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class UserRole(StrEnum):
    ADMIN = "admin"
    SALES_MANAGER = "sales_manager"
    FINANCE = "finance"
    SALES_REP = "sales_rep"


TOP_ROLE = UserRole.ADMIN

ROLE_LEVELS: dict[UserRole, int] = {
    UserRole.ADMIN: 100,
    UserRole.SALES_MANAGER: 50,
    UserRole.FINANCE: 30,
    UserRole.SALES_REP: 10,
}


def parse_role(value: object) -> UserRole | None:
    """Return the matching role, or ``None`` for anything outside the enumeration."""

    if isinstance(value, UserRole):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UserRole(value)
    except ValueError:
        return None


def level_of(role: object) -> int:
    """Level of ``role``; unknown values map to 0 so comparisons fail closed."""

    parsed = parse_role(role)
    if parsed is None:
        return 0
    return ROLE_LEVELS[parsed]


def is_at_least(role: object, threshold: UserRole) -> bool:
    return level_of(role) >= ROLE_LEVELS[threshold]


def is_admin(role: object) -> bool:
    return parse_role(role) is TOP_ROLE


def is_manager(role: object) -> bool:
    return is_at_least(role, UserRole.SALES_MANAGER)


def can_access(role: object, allowed_roles: Iterable[UserRole]) -> bool:
    parsed = parse_role(role)
    return parsed is not None and parsed in set(allowed_roles)
