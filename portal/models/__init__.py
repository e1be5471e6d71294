from __future__ import annotations

"""
Data Models Package.

Re-exports all Pydantic models for short imports:
    from portal.models import Profile, Identity, Tutorial, Role
    from portal.models import AuthResult, AuthErrorCode, SessionSnapshot
"""

from portal.models.audit_log import AuditLogEntry
from portal.models.auth_models import AuthErrorCode, AuthResult, MagicLinkResult
from portal.models.enums import (
    PERSISTABLE_ROLES,
    AuditAction,
    AuthProvider,
    Role,
    SessionState,
)
from portal.models.profile import Identity, Profile, ProfileUpdate
from portal.models.service_models import ServiceResult
from portal.models.session import SessionSnapshot
from portal.models.tutorial import Tutorial, TutorialInsert

__all__ = [
    "PERSISTABLE_ROLES",
    "AuditAction",
    "AuditLogEntry",
    "AuthErrorCode",
    "AuthProvider",
    "AuthResult",
    "Identity",
    "MagicLinkResult",
    "Profile",
    "ProfileUpdate",
    "Role",
    "ServiceResult",
    "SessionSnapshot",
    "SessionState",
    "Tutorial",
    "TutorialInsert",
]
