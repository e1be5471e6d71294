"""
Profile Repository.

Handles all profile data access against ``public.users`` via Supabase.
Row-level security on the table mirrors the portal's policy table; this
layer performs no authorization of its own.
"""

from __future__ import annotations

from typing import Any, Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import Role
from portal.models.profile import Profile
from portal.repositories.base_repository import BaseRepository


class ProfileRepository(BaseRepository):
    """Data access layer for Profile entities.

    Role values reaching :meth:`insert` and :meth:`update` must already
    have passed the persistence guard in the service layer.
    """

    TABLE = "users"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, user_id: str) -> Optional[Profile]:
        """Fetch a profile by primary key.

        Raises
        ------
        Exception
            Any transport or backend error.  The sign-in flow needs to
            tell "no such row" apart from "lookup failed", so this read
            does not swallow errors.
        """
        response = (
            self.supabase.table(self.TABLE)
            .select("*")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        # postgrest returns None instead of an empty response for 0 rows
        if response is None or not response.data:
            return None
        return Profile(**response.data)

    def find_by_id(self, user_id: str) -> Optional[Profile]:
        """Like :meth:`get_by_id` but returns ``None`` on failure."""
        return self._read(
            lambda: self.get_by_id(user_id),
            default_factory=lambda: None,
            operation_name="get_by_id (users)",
        )

    def list_members(self) -> list[Profile]:
        """Fetch STAFF and STUDENT profiles, newest first."""
        response = (
            self.supabase.table(self.TABLE)
            .select("*")
            .in_("role", [str(Role.STAFF), str(Role.STUDENT)])
            .order("created_at", desc=True)
            .execute()
        )
        return [Profile(**row) for row in response.data or []]

    def insert(self, data: dict[str, Any]) -> Profile:
        """Insert a new profile row and return it."""
        response = self.supabase.table(self.TABLE).insert(data).execute()
        profile = Profile(**response.data[0])
        self._logger.info("Profile inserted: %s", profile.id)
        return profile

    def update(self, user_id: str, changes: dict[str, Any]) -> Optional[Profile]:
        """Apply *changes* to a profile.  Returns ``None`` if no row matched."""
        response = (
            self.supabase.table(self.TABLE)
            .update(changes)
            .eq("id", user_id)
            .execute()
        )
        if not response.data:
            return None
        return Profile(**response.data[0])

    def delete(self, user_id: str) -> bool:
        """Hard-delete a profile row.  Returns ``True`` if a row was removed."""
        response = (
            self.supabase.table(self.TABLE)
            .delete()
            .eq("id", user_id)
            .execute()
        )
        return bool(response.data)
