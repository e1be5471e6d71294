"""
Tutorial Repository.

Data access for ``public.tutorials``.
"""

from __future__ import annotations

from typing import Any, Optional

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import Role
from portal.models.tutorial import Tutorial
from portal.repositories.base_repository import BaseRepository


class TutorialRepository(BaseRepository):
    """Data access layer for Tutorial entities."""

    TABLE = "tutorials"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def list_all(self, target_role: Optional[Role] = None) -> list[Tutorial]:
        """Fetch tutorials, newest first, optionally narrowed to one audience.

        Raises ``RuntimeError`` without a Supabase client.  Query errors
        propagate.
        """
        query = self.supabase.table(self.TABLE).select("*")
        if target_role is not None:
            query = query.eq("target_role", str(target_role))
        response = query.order("created_at", desc=True).execute()
        return [Tutorial(**row) for row in response.data or []]

    def insert(self, data: dict[str, Any]) -> Tutorial:
        response = self.supabase.table(self.TABLE).insert(data).execute()
        return Tutorial(**response.data[0])

    def update(self, tutorial_id: str, changes: dict[str, Any]) -> Optional[Tutorial]:
        response = (
            self.supabase.table(self.TABLE)
            .update(changes)
            .eq("id", tutorial_id)
            .execute()
        )
        if not response.data:
            return None
        return Tutorial(**response.data[0])

    def delete(self, tutorial_id: str) -> bool:
        response = (
            self.supabase.table(self.TABLE)
            .delete()
            .eq("id", tutorial_id)
            .execute()
        )
        return bool(response.data)
