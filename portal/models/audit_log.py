"""
Audit Log Row Model.

Read-side representation of ``public.audit_logs`` for the admin viewer.
The write-side event is :class:`portal.utils.audit.AuditEvent`.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuditLogEntry(BaseModel):
    """A persisted audit row.  Never mutated by the application."""

    id: str
    user_id: Optional[str] = None
    user_role: str
    action: str
    details: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True}
