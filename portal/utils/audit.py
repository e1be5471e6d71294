"""
Structured Audit Logging Utility.

Every state change is logged as a structured JSON object.  Provides a
Pydantic-validated event model and a single function for consistent
local audit trail entries.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from portal.logger import StructuredLogger

__all__ = ["AuditEvent", "DetailValue", "build_audit_event", "log_audit_event"]

# Scalar type permitted inside the ``details`` mapping.  Nested structures
# should be modelled explicitly, not smuggled through the audit log.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry.

    Events are immutable once built.  ``actor_role`` is the role at the
    time of the action (possibly the runtime-only ``SUDO``), or
    ``UNKNOWN`` for anonymous actors.
    """

    timestamp: str
    actor_id: Optional[str] = None
    actor_role: str = "UNKNOWN"
    action: str
    details: dict[str, DetailValue] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def details_json(self) -> str:
        """Serialise ``details`` plus the event timestamp for the sink."""
        return json.dumps({**self.details, "logged_at": self.timestamp}, default=str)


def build_audit_event(
    action: str,
    actor_id: Optional[str] = None,
    actor_role: Optional[str] = None,
    details: Optional[dict[str, DetailValue]] = None,
) -> AuditEvent:
    """Build an ``AuditEvent`` stamped with the current UTC time."""
    return AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        actor_id=actor_id,
        actor_role=actor_role or "UNKNOWN",
        action=action,
        details=details or {},
    )


def log_audit_event(logger: StructuredLogger, event: AuditEvent) -> None:
    """Emit *event* as a structured ``AUDIT:`` JSON log line."""
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))
