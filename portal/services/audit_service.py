"""
Audit Emitter.

Records one ``AuditEvent`` per auth-lifecycle transition or privileged
mutation.  Recording is best-effort: :meth:`AuditService.record` never
raises, so a failing sink can never change the outcome of the action
being audited.

Each event is written twice:
    1. A local ``AUDIT: {json}`` log line (always).
    2. A row in ``public.audit_logs`` via :class:`AuditRepository`.
"""

from __future__ import annotations

from typing import Optional, Union

from portal.auth import SessionManager
from portal.logger import StructuredLogger
from portal.models.audit_log import AuditLogEntry
from portal.models.enums import AuditAction, Role
from portal.models.service_models import ServiceResult
from portal.repositories.audit_repository import AuditRepository, AuditSinkError
from portal.services.base_service import BaseService
from portal.services.policy import Operation, Resource, authorize
from portal.utils.audit import DetailValue, build_audit_event, log_audit_event


class AuditService(BaseService):
    """Fire-and-forget audit recorder plus the admin audit viewer query."""

    def __init__(
        self,
        repo: AuditRepository,
        session: SessionManager,
        logger: StructuredLogger,
        default_limit: int = 500,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._session = session
        self._default_limit = default_limit

    def record(
        self,
        action: Union[AuditAction, str],
        details: Optional[dict[str, DetailValue]] = None,
        *,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> Optional[str]:
        """Record one audit event for the current (or given) actor.

        Returns the stored row id, or ``None`` if the sink failed.
        Never raises.
        """
        try:
            session_id, session_role = self._session.current_actor()
            event = build_audit_event(
                action=str(action),
                actor_id=actor_id or session_id,
                actor_role=actor_role or session_role,
                details=details,
            )
            log_audit_event(self._logger, event)
            return self._repo.append(event)
        except AuditSinkError as exc:
            self._logger.warning("Audit sink rejected %s: %s", action, exc)
        except Exception as exc:
            self._logger.error(
                "Audit recording failed for %s: %s", action, exc, exc_info=True
            )
        return None

    def list_recent(
        self,
        role: Union[Role, str, None],
        limit: Optional[int] = None,
    ) -> ServiceResult:
        """Most recent audit rows, newest first, for roles allowed to read them."""
        if not authorize(role, Resource.AUDIT_LOG, Operation.READ_ALL):
            return ServiceResult(
                success=False,
                error="You are not allowed to view the audit log.",
                status_code=403,
            )

        effective_limit = limit if limit is not None else self._default_limit
        if effective_limit <= 0:
            return ServiceResult(
                success=False,
                error="Limit must be a positive integer.",
                status_code=400,
            )

        try:
            entries: list[AuditLogEntry] = self._repo.list_recent(effective_limit)
        except RuntimeError:
            return ServiceResult(
                success=False,
                error="Supabase credentials not configured.",
                status_code=503,
            )
        except Exception as exc:
            self._logger.error("Failed to fetch audit logs: %s", exc)
            return ServiceResult(
                success=False,
                error=f"Database error fetching audit logs: {exc}",
                status_code=500,
            )
        return ServiceResult(success=True, data=entries)
