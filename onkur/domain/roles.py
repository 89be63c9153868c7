"""
Role model

Roles are declared in priority order: the first declared member is the
highest-priority role.
"""
import enum
from typing import Iterable, List, Optional


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    EVENT_MANAGER = "EVENT_MANAGER"
    VOLUNTEER = "VOLUNTEER"
    SPONSOR = "SPONSOR"

    @property
    def priority(self) -> int:
        return _PRIORITY[self]


_PRIORITY = {role: index for index, role in enumerate(Role)}

# Roles a user may pick at public signup
PUBLIC_SIGNUP_ROLES = (Role.VOLUNTEER, Role.EVENT_MANAGER, Role.SPONSOR)


def normalize_role(value) -> Optional[Role]:
    """Return the canonical Role for a raw value, or None when it is not a role"""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    candidate = value.strip().upper()
    try:
        return Role(candidate)
    except ValueError:
        return None


def sort_roles_by_priority(values: Iterable) -> List[Role]:
    """Normalize, drop invalid entries, dedupe and order by priority"""
    roles = {role for role in (normalize_role(v) for v in values or []) if role is not None}
    return sorted(roles, key=lambda role: role.priority)


def determine_primary_role(values: Iterable, fallback=None) -> Role:
    roles = sort_roles_by_priority(values)
    if roles:
        return roles[0]
    return normalize_role(fallback) or Role.VOLUNTEER


def has_any_role(held: Iterable, allowed: Iterable) -> bool:
    """True when any held role is in the allowed set"""
    allowed_set = set(sort_roles_by_priority(allowed))
    return any(role in allowed_set for role in sort_roles_by_priority(held))
