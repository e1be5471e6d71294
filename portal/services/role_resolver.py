"""
Effective Role Resolution and the SUDO Persistence Guard.

``SUDO`` is a runtime-only privilege tier granted to exactly one
configured email address.  It is derived on every resolution and must
never reach a profile's ``role`` column.

Two tools keep it out:
    - :meth:`RoleResolver.assert_not_persistable` rejects a SUDO write
      outright (and audits the attempt).
    - :func:`sanitize_for_persistence` maps SUDO and unknown values to
      ``None`` for callers that prefer to drop the field.
"""

from __future__ import annotations

from typing import Optional, Union

from portal.config import AppConfig
from portal.feature_flags import FeatureFlags
from portal.logger import StructuredLogger
from portal.models.enums import PERSISTABLE_ROLES, AuditAction, Role
from portal.models.profile import Profile
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.utils.validation import email_matches


class PersistenceBlockedError(Exception):
    """Raised when code attempts to persist the runtime-only SUDO role.

    This is a programming-contract violation, not a user error.
    """

    def __init__(self, context: str) -> None:
        self.context: str = context
        super().__init__(f"SUDO role cannot be persisted ({context or 'unspecified'}).")


def is_role_persistable(role: Union[Role, str, None]) -> bool:
    """``True`` only for STAFF, STUDENT and ADMIN."""
    if not role:
        return False
    try:
        return Role(role) in PERSISTABLE_ROLES
    except ValueError:
        return False


def sanitize_for_persistence(role: Union[Role, str, None]) -> Optional[Role]:
    """Return *role* if it may be persisted, else ``None``.

    SUDO, empty and unrecognised values all map to ``None``.
    """
    if not is_role_persistable(role):
        return None
    return Role(role)


class RoleResolver(BaseService):
    """Computes effective roles and guards role writes."""

    def __init__(
        self,
        config: AppConfig,
        flags: FeatureFlags,
        audit: AuditService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._config = config
        self._flags = flags
        self._audit = audit

    def is_sudo_identity(self, email: Optional[str]) -> bool:
        """Whether *email* is the configured override address.

        Always ``False`` while the SUDO flag is off.
        """
        if not self._flags.sudo_admin:
            return False
        return email_matches(email, self._config.SUDO_ADMIN_EMAIL)

    def effective_role(
        self,
        profile: Optional[Profile],
        identity_email: Optional[str],
    ) -> Optional[Role]:
        """Role used for authorization decisions.

        SUDO for the override identity, otherwise the persisted role, or
        ``None`` without a profile.
        """
        if self.is_sudo_identity(identity_email):
            return Role.SUDO
        return profile.role if profile is not None else None

    def assert_not_persistable(
        self,
        role: Union[Role, str, None],
        context: str = "",
    ) -> None:
        """Reject a write that would persist SUDO.

        A no-op for every other value.  The blocked attempt is audited on
        a best-effort basis before the error is raised.

        Raises:
            PersistenceBlockedError: If *role* is SUDO.
        """
        if role != Role.SUDO:
            return

        self._logger.error("Blocked attempt to persist SUDO role in %s", context)
        self._audit.record(
            AuditAction.SUDO_PERSISTENCE_BLOCKED,
            {"context": context},
        )
        raise PersistenceBlockedError(context)
