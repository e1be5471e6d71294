"""
Shared Enumerations for Portal Models.

All string enumerations for type-safe field constraints.
StrEnum values compare equal to their string equivalents,
so code like ``if role == 'ADMIN'`` continues to work.
"""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    """Application roles.

    ``STAFF``, ``STUDENT`` and ``ADMIN`` are stored in a profile's
    ``role`` column.  ``SUDO`` is computed at runtime from the configured
    override address and is never written to a profile.
    """

    STAFF = "STAFF"
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"
    SUDO = "SUDO"


PERSISTABLE_ROLES: frozenset[Role] = frozenset({Role.STAFF, Role.STUDENT, Role.ADMIN})
"""Roles that may be written to ``users.role``."""

TUTORIAL_TARGET_ROLES: frozenset[Role] = frozenset({Role.STAFF, Role.STUDENT})
"""Audiences a tutorial may be published for."""


class AuthProvider(StrEnum):
    """How a profile authenticates."""

    LEGACY = "legacy"
    MAGIC_LINK = "magic_link"
    PASSWORD = "password"


class SessionState(StrEnum):
    """Session lifecycle states."""

    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    VERIFIED_NO_PROFILE = "VERIFIED_NO_PROFILE"
    AUTHENTICATED = "AUTHENTICATED"


class AuditAction(StrEnum):
    """Action tags written to the audit trail."""

    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    SESSION_EXPIRED_V2 = "AUTH_EVENT:SESSION_EXPIRED_V2"
    MAGIC_LINK_SENT = "MAGIC_LINK_SENT"
    MAGIC_LINK_FAILED = "MAGIC_LINK_FAIL"
    MAGIC_LINK_SIGNUP = "MAGIC_LINK_SIGNUP"
    MAGIC_LINK_LOGIN = "MAGIC_LINK_LOGIN"
    STAFF_DOMAIN_VALIDATION_FAILURE = "STAFF_DOMAIN_FAIL"
    SUDO_PERSISTENCE_BLOCKED = "SUDO_PERSISTENCE_BLOCKED"
    ADD_USER = "ADD_USER_ID"
    UPDATE_USER = "UPDATE_USER"
    UPDATE_ROLE = "UPDATE_ROLE"
    DELETE_USER = "DELETE_USER_ID"
    CREATE_TUTORIAL = "CREATE_TUTORIAL"
    UPDATE_TUTORIAL = "UPDATE_TUTORIAL"
    DELETE_TUTORIAL = "DELETE_TUTORIAL"
