"""
User Management Service.

Handles administrative profile operations: listing, creating, updating,
role changes and deletion.  Every operation is gated by the policy table
and every write that carries a role passes the SUDO persistence guard
first.

A blocked SUDO write raises :class:`PersistenceBlockedError` rather than
returning a result: it is a programming error, not a user mistake.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from portal.logger import StructuredLogger
from portal.models.enums import AuditAction, Role
from portal.models.profile import Profile, ProfileUpdate
from portal.models.service_models import ServiceResult
from portal.repositories.profile_repository import ProfileRepository
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.services.policy import Operation, Resource, authorize, can_delete_profile
from portal.services.role_resolver import RoleResolver, sanitize_for_persistence

RoleLike = Union[Role, str, None]


def _forbidden(message: str) -> ServiceResult:
    return ServiceResult(success=False, error=message, status_code=403)


def _invalid_role(role: RoleLike) -> ServiceResult:
    return ServiceResult(
        success=False,
        error=f"Invalid role specified: '{role}'. Must be one of: STAFF, STUDENT, ADMIN.",
        status_code=400,
    )


def _backend_failure(action: str, exc: Exception) -> ServiceResult:
    if isinstance(exc, RuntimeError):
        return ServiceResult(
            success=False,
            error="Supabase credentials not configured.",
            status_code=503,
        )
    return ServiceResult(success=False, error=f"Could not {action}: {exc}", status_code=500)


class ProfileService(BaseService):
    """Service layer for admin user management operations."""

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

    def list_users(self, role: RoleLike) -> ServiceResult:
        """STAFF and STUDENT profiles, newest first, for the admin table."""
        if not authorize(role, Resource.PROFILE, Operation.READ_ALL):
            return _forbidden("You are not allowed to view the user list.")
        try:
            users: list[Profile] = self._repo.list_members()
        except Exception as exc:
            self._logger.error("Failed to fetch users: %s", exc)
            return _backend_failure("fetch users", exc)
        return ServiceResult(success=True, data=users)

    def create_profile(
        self,
        role: RoleLike,
        user_id: str,
        id_number: str,
        name: str,
        new_role: RoleLike,
        email: Optional[str] = None,
    ) -> ServiceResult:
        """Create the profile row for an existing auth identity.

        Raises:
            PersistenceBlockedError: If *new_role* is SUDO.
        """
        if not authorize(role, Resource.PROFILE, Operation.WRITE):
            return _forbidden("Only administrators can add users.")

        self._resolver.assert_not_persistable(new_role, "create_profile")
        persisted = sanitize_for_persistence(new_role)
        if persisted is None:
            return _invalid_role(new_role)

        if not user_id or not id_number.strip() or not name.strip():
            return ServiceResult(
                success=False,
                error="User id, ID number and name are required.",
                status_code=400,
            )

        data: dict[str, Any] = {
            "id": user_id,
            "id_number": id_number.strip(),
            "role": str(persisted),
            "name": name.strip(),
            "email": email.strip().lower() if email else None,
            "is_active": True,
        }
        try:
            created = self._repo.insert(data)
        except Exception as exc:
            self._logger.error("Failed to create profile %s: %s", user_id, exc)
            return _backend_failure("create user", exc)

        self._audit.record(
            AuditAction.ADD_USER,
            {"id_number": created.id_number, "role": str(persisted)},
        )
        return ServiceResult(success=True, data=created, status_code=201)

    def update_profile(
        self,
        role: RoleLike,
        user_id: str,
        update: ProfileUpdate,
    ) -> ServiceResult:
        """Apply a partial update to a profile.

        Raises:
            PersistenceBlockedError: If the update sets ``role`` to SUDO.
        """
        if not authorize(role, Resource.PROFILE, Operation.WRITE):
            return _forbidden("Only administrators can edit users.")

        changes = update.changes()
        if "role" in changes:
            self._resolver.assert_not_persistable(changes["role"], "update_profile")
            if sanitize_for_persistence(changes["role"]) is None:
                return _invalid_role(changes["role"])
        if not changes:
            return ServiceResult(success=False, error="Nothing to update.", status_code=400)

        try:
            updated: Optional[Profile] = self._repo.update(user_id, changes)
        except Exception as exc:
            self._logger.error("Failed to update profile %s: %s", user_id, exc)
            return _backend_failure("update user", exc)
        if updated is None:
            return ServiceResult(success=False, error="User not found.", status_code=404)

        self._audit.record(
            AuditAction.UPDATE_USER,
            {"user_id": user_id, "fields": ", ".join(sorted(changes))},
        )
        return ServiceResult(success=True, data=updated)

    def update_role(
        self,
        role: RoleLike,
        user_id: str,
        new_role: RoleLike,
    ) -> ServiceResult:
        """Change a profile's persisted role.

        Raises:
            PersistenceBlockedError: If *new_role* is SUDO.
        """
        if not authorize(role, Resource.PROFILE, Operation.WRITE):
            return _forbidden("Only administrators can update user roles.")

        self._resolver.assert_not_persistable(new_role, "update_role")
        persisted = sanitize_for_persistence(new_role)
        if persisted is None:
            return _invalid_role(new_role)

        try:
            existing: Optional[Profile] = self._repo.get_by_id(user_id)
            if existing is None:
                return ServiceResult(success=False, error="User not found.", status_code=404)
            updated = self._repo.update(user_id, {"role": str(persisted)})
        except Exception as exc:
            self._logger.error("Failed to update role for %s: %s", user_id, exc)
            return _backend_failure("update role", exc)
        if updated is None:
            return ServiceResult(
                success=False,
                error="Failed to update role in database.",
                status_code=500,
            )

        self._audit.record(
            AuditAction.UPDATE_ROLE,
            {
                "user_id": user_id,
                "old_role": str(existing.role),
                "new_role": str(persisted),
            },
        )
        return ServiceResult(success=True, data=updated)

    def delete_user(
        self,
        role: RoleLike,
        actor_id: Optional[str],
        user_id: str,
    ) -> ServiceResult:
        """Hard-delete a profile.  SUDO only, and never the caller's own."""
        if actor_id and actor_id == user_id:
            return _forbidden("You cannot delete your own account.")
        if not can_delete_profile(role, actor_id, user_id):
            return _forbidden("Only the super-administrator can delete users.")

        try:
            existing: Optional[Profile] = self._repo.get_by_id(user_id)
            if existing is None:
                return ServiceResult(success=False, error="User not found.", status_code=404)
            deleted = self._repo.delete(user_id)
        except Exception as exc:
            self._logger.error("Failed to delete user %s: %s", user_id, exc)
            return _backend_failure("delete user", exc)
        if not deleted:
            return ServiceResult(success=False, error="User not found.", status_code=404)

        self._audit.record(AuditAction.DELETE_USER, {"id_number": existing.id_number})
        self._logger.info("User %s deleted", existing.id_number)
        return ServiceResult(success=True, data={"id": user_id})
