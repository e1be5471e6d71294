"""
First-Sign-In Profile Provisioning.

Ensures that an identity verified through a magic link has a matching
row in ``public.users``.

Sync strategy:
    - Unknown identity: create a profile for the intended audience
      (STAFF or STUDENT only, default STUDENT).
    - Known identity: mark the email verified if it was not already.
    - NEVER overwrite an existing profile's ``role``.
    - Every role value passes the SUDO persistence guard before insert.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Union

from portal.logger import StructuredLogger
from portal.models.enums import AuditAction, AuthProvider, Role, TUTORIAL_TARGET_ROLES
from portal.models.profile import Identity, Profile
from portal.repositories.profile_repository import ProfileRepository
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.services.role_resolver import RoleResolver, sanitize_for_persistence


class ProfileProvisioningError(Exception):
    """Custom exception for profile provisioning failures."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


def provisioned_role(intended_role: Union[Role, str, None]) -> Role:
    """Role assigned to a self-provisioned profile.

    Only the two member audiences can be self-selected; anything else,
    including ADMIN and SUDO, falls back to STUDENT.
    """
    role = sanitize_for_persistence(intended_role)
    if role is None or role not in TUTORIAL_TARGET_ROLES:
        return Role.STUDENT
    return role


class ProfileProvisioningService(BaseService):
    """Creates or refreshes the profile behind a magic-link sign-in."""

    def __init__(
        self,
        repo: ProfileRepository,
        resolver: RoleResolver,
        audit: AuditService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._resolver = resolver
        self._audit = audit

    def ensure_profile(
        self,
        identity: Identity,
        intended_role: Union[Role, str, None] = None,
    ) -> Profile:
        """Return the profile for *identity*, creating it if needed.

        Raises:
            ProfileProvisioningError: If the profile can neither be found
                nor created.
        """
        try:
            existing = self._repo.get_by_id(identity.id)
        except Exception as exc:
            self._logger.error(
                "Provisioning: profile lookup failed for %s: %s", identity.id, exc,
            )
            raise ProfileProvisioningError(
                f"Profile lookup failed: {exc}", original_error=exc,
            ) from exc

        if existing is None:
            return self._provision_new_profile(identity, intended_role)
        return self._refresh_existing_profile(existing, identity)

    # ------------------------------------------------------------------
    # Private implementation
    # ------------------------------------------------------------------

    def _provision_new_profile(
        self,
        identity: Identity,
        intended_role: Union[Role, str, None],
    ) -> Profile:
        role = provisioned_role(intended_role)
        self._resolver.assert_not_persistable(role, "profile_provisioning")

        email = identity.email or ""
        data: dict[str, Any] = {
            "id": identity.id,
            "id_number": f"ML-{int(time.time() * 1000)}",
            "role": str(role),
            "name": email.split("@", 1)[0] or "User",
            "email": identity.email,
            "is_active": True,
            "email_verified": True,
            "auth_provider": str(AuthProvider.MAGIC_LINK),
        }

        try:
            created = self._repo.insert(data)
        except Exception as exc:
            # Possible race with a parallel verification; retry the lookup
            self._logger.warning(
                "Provisioning: insert failed for %s, retrying lookup: %s",
                identity.id,
                exc,
            )
            retried: Optional[Profile] = self._repo.find_by_id(identity.id)
            if retried is None:
                raise ProfileProvisioningError(
                    "Failed to create user profile.", original_error=exc,
                ) from exc
            return retried

        self._logger.info("Provisioning: created %s profile %s", role, identity.id)
        self._audit.record(
            AuditAction.MAGIC_LINK_SIGNUP,
            {"email": identity.email, "role": str(role)},
            actor_id=identity.id,
            actor_role=str(role),
        )
        return created

    def _refresh_existing_profile(self, profile: Profile, identity: Identity) -> Profile:
        result = profile
        if not profile.email_verified:
            try:
                updated = self._repo.update(
                    profile.id,
                    {
                        "email_verified": True,
                        "auth_provider": str(AuthProvider.MAGIC_LINK),
                    },
                )
                if updated is not None:
                    result = updated
            except Exception as exc:
                # The sign-in itself is still valid
                self._logger.warning(
                    "Provisioning: could not mark %s verified: %s", profile.id, exc,
                )

        self._audit.record(
            AuditAction.MAGIC_LINK_LOGIN,
            {"email": identity.email, "role": str(profile.role)},
            actor_id=identity.id,
            actor_role=str(profile.role),
        )
        return result
