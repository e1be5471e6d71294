"""Shared utility functions and models for the portal.

Convenience re-exports so that consumers can import directly from
``portal.utils`` while full absolute imports remain supported.
"""

from portal.utils.audit import AuditEvent, build_audit_event, log_audit_event
from portal.utils.validation import normalize_email, validate_email

__all__ = [
    "AuditEvent",
    "build_audit_event",
    "log_audit_event",
    "normalize_email",
    "validate_email",
]
