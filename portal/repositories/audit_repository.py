"""
Audit Repository.

Append-only access to ``public.audit_logs``.  The application never
updates or deletes audit rows; retention is the database's concern.
"""

from __future__ import annotations

from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.audit_log import AuditLogEntry
from portal.repositories.base_repository import BaseRepository
from portal.utils.audit import AuditEvent


class AuditSinkError(Exception):
    """Raised when an audit event cannot be appended to the store."""


class AuditRepository(BaseRepository):
    """Data access layer for the audit trail."""

    TABLE = "audit_logs"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def append(self, event: AuditEvent) -> str:
        """Append *event* and return the new row id.

        Raises
        ------
        AuditSinkError
            If the insert fails or returns no row.
        """
        row = {
            "user_id": event.actor_id,
            "user_role": event.actor_role,
            "action": event.action,
            "details": event.details_json(),
        }
        try:
            response = self.supabase.table(self.TABLE).insert(row).execute()
        except Exception as exc:
            raise AuditSinkError(f"Audit append failed for {event.action}: {exc}") from exc
        if not response.data:
            raise AuditSinkError(f"Audit append for {event.action} returned no row.")
        return str(response.data[0].get("id", ""))

    def list_recent(self, limit: int) -> list[AuditLogEntry]:
        """Fetch the most recent *limit* rows, newest first."""
        response = (
            self.supabase.table(self.TABLE)
            .select("*")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return [AuditLogEntry(**row) for row in response.data or []]
