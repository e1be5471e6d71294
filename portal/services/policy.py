"""
Role-Based Access Policy.

Single source of truth for which role may do what.  Every call site asks
:func:`authorize` (or one of the helpers built on it) instead of
comparing role strings itself.

The table is plain data: each ``(resource, operation)``
pair maps to the frozenset of roles allowed to perform it.  Anything not
listed, and any role that is ``None`` or unrecognised, is denied.

The Supabase row-level security policies enforce an equivalent table
server-side; the two must be kept in step when either changes.
"""

from __future__ import annotations

from enum import StrEnum
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Union

from portal.models.enums import Role
from portal.models.tutorial import Tutorial

__all__ = [
    "POLICY_TABLE",
    "Operation",
    "Resource",
    "authorize",
    "can_delete_profile",
    "can_read_tutorial",
    "route_admits",
    "visible_tutorials",
]


class Resource(StrEnum):
    """Entities guarded by the policy table."""

    PROFILE = "PROFILE"
    TUTORIAL = "TUTORIAL"
    AUDIT_LOG = "AUDIT_LOG"


class Operation(StrEnum):
    """Operations on a :class:`Resource`."""

    READ_OWN = "READ_OWN"
    READ_ALL = "READ_ALL"
    READ_MATCHING_ROLE = "READ_MATCHING_ROLE"
    WRITE = "WRITE"
    DELETE = "DELETE"


_EVERYONE: frozenset[Role] = frozenset(Role)
_MEMBERS: frozenset[Role] = frozenset({Role.STAFF, Role.STUDENT})
_ADMINS: frozenset[Role] = frozenset({Role.ADMIN, Role.SUDO})
_SUDO_ONLY: frozenset[Role] = frozenset({Role.SUDO})
_ADMIN_ACTS_AS: frozenset[Role] = frozenset({Role.STAFF, Role.STUDENT, Role.ADMIN})

POLICY_TABLE: Mapping[tuple[Resource, Operation], frozenset[Role]] = MappingProxyType(
    {
        (Resource.PROFILE, Operation.READ_OWN): _EVERYONE,
        (Resource.PROFILE, Operation.READ_ALL): _ADMINS,
        (Resource.PROFILE, Operation.WRITE): _ADMINS,
        (Resource.PROFILE, Operation.DELETE): _SUDO_ONLY,
        (Resource.TUTORIAL, Operation.READ_MATCHING_ROLE): _MEMBERS,
        (Resource.TUTORIAL, Operation.READ_ALL): _ADMINS,
        (Resource.TUTORIAL, Operation.WRITE): _ADMINS,
        (Resource.AUDIT_LOG, Operation.READ_ALL): _ADMINS,
        # Append-only; every signed-in role records its own actions.
        (Resource.AUDIT_LOG, Operation.WRITE): _EVERYONE,
    }
)


def _coerce_role(role: Union[Role, str, None]) -> Optional[Role]:
    if role is None:
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def authorize(
    role: Union[Role, str, None],
    resource: Union[Resource, str],
    operation: Union[Operation, str],
) -> bool:
    """Return ``True`` when *role* may perform *operation* on *resource*.

    Pure and total: unknown roles, resources or operations are denied.
    """
    resolved = _coerce_role(role)
    if resolved is None:
        return False
    try:
        key = (Resource(resource), Operation(operation))
    except ValueError:
        return False
    return resolved in POLICY_TABLE.get(key, frozenset())


def can_read_tutorial(
    role: Union[Role, str, None],
    target_role: Union[Role, str, None],
) -> bool:
    """Whether *role* may see a tutorial published for *target_role*."""
    if authorize(role, Resource.TUTORIAL, Operation.READ_ALL):
        return True
    if not authorize(role, Resource.TUTORIAL, Operation.READ_MATCHING_ROLE):
        return False
    return _coerce_role(target_role) == _coerce_role(role)


def visible_tutorials(
    role: Union[Role, str, None],
    tutorials: Iterable[Tutorial],
) -> list[Tutorial]:
    """Filter *tutorials* down to what *role* may see.

    Applied to whatever the store returned, so a misconfigured backend
    policy never widens what a member sees.
    """
    return [t for t in tutorials if can_read_tutorial(role, t.target_role)]


def can_delete_profile(
    role: Union[Role, str, None],
    actor_id: Optional[str],
    target_id: Optional[str],
) -> bool:
    """Whether *actor_id* holding *role* may delete profile *target_id*.

    Only SUDO may delete, and never its own identity.
    """
    if not actor_id or not target_id:
        return False
    if actor_id == target_id:
        return False
    return authorize(role, Resource.PROFILE, Operation.DELETE)


def route_admits(
    required_roles: Iterable[Union[Role, str]],
    role: Union[Role, str, None],
) -> bool:
    """Whether a signed-in *role* may open a route requiring *required_roles*.

    An empty requirement admits any role.  SUDO is admitted everywhere.
    ADMIN is admitted wherever STAFF, STUDENT or ADMIN is, but never to a
    route that requires SUDO alone.
    """
    resolved = _coerce_role(role)
    if resolved is None:
        return False
    requested = list(required_roles)
    if not requested:
        return True
    required = {r for r in (_coerce_role(x) for x in requested) if r is not None}
    if resolved == Role.SUDO or resolved in required:
        return True
    return resolved == Role.ADMIN and bool(required & _ADMIN_ACTS_AS)
