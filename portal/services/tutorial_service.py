"""
Tutorial Service.

Role-filtered tutorial listing for dashboards and tutorial management
for administrators.
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import ValidationError

from portal.logger import StructuredLogger
from portal.models.enums import AuditAction, Role
from portal.models.service_models import ServiceResult
from portal.models.tutorial import Tutorial, TutorialInsert
from portal.repositories.tutorial_repository import TutorialRepository
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.services.policy import Operation, Resource, authorize, visible_tutorials

RoleLike = Union[Role, str, None]


def matching(tutorials: list[Tutorial], search: Optional[str]) -> list[Tutorial]:
    """Tutorials whose title or description contains *search* (case-insensitive).

    A blank or missing term keeps every tutorial.
    """
    term = (search or "").strip().casefold()
    if not term:
        return tutorials
    return [
        t for t in tutorials
        if term in t.title.casefold() or term in (t.description or "").casefold()
    ]


class TutorialService(BaseService):
    """Service layer for tutorials."""

    def __init__(
        self,
        repo: TutorialRepository,
        audit: AuditService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._audit = audit

    def list_tutorials(self, role: RoleLike, search: Optional[str] = None) -> ServiceResult:
        """Tutorials *role* may see, newest first.

        Members get only their own audience regardless of what the store
        returns; administrators get everything.  *search* then narrows the
        visible set to tutorials whose title or description contains it,
        ignoring case.
        """
        if authorize(role, Resource.TUTORIAL, Operation.READ_ALL):
            audience: Optional[Role] = None
        elif authorize(role, Resource.TUTORIAL, Operation.READ_MATCHING_ROLE):
            audience = Role(role)
        else:
            return ServiceResult(
                success=False,
                error="Sign in to view tutorials.",
                status_code=403,
            )

        try:
            tutorials = self._repo.list_all(target_role=audience)
        except RuntimeError:
            return ServiceResult(
                success=False,
                error="Supabase credentials not configured.",
                status_code=503,
            )
        except Exception as exc:
            self._logger.error("Failed to fetch tutorials: %s", exc)
            return ServiceResult(
                success=False,
                error=f"Database error fetching tutorials: {exc}",
                status_code=500,
            )

        if audience is not None:
            tutorials = visible_tutorials(role, tutorials)
        return ServiceResult(success=True, data=matching(tutorials, search))

    def create_tutorial(
        self,
        role: RoleLike,
        payload: Union[TutorialInsert, dict[str, Any]],
        actor_id: Optional[str] = None,
    ) -> ServiceResult:
        if not authorize(role, Resource.TUTORIAL, Operation.WRITE):
            return self._forbidden()

        parsed = self._parse(payload)
        if isinstance(parsed, ServiceResult):
            return parsed
        missing = parsed.missing_for_create()
        if missing:
            return ServiceResult(
                success=False,
                error=f"Missing required fields: {', '.join(missing)}.",
                status_code=400,
            )

        data = parsed.changes()
        if actor_id:
            data["created_by"] = actor_id
        try:
            created: Tutorial = self._repo.insert(data)
        except Exception as exc:
            self._logger.error("Failed to create tutorial: %s", exc)
            return ServiceResult(success=False, error=f"Could not create tutorial: {exc}", status_code=500)

        self._audit.record(AuditAction.CREATE_TUTORIAL, {"title": created.title})
        return ServiceResult(success=True, data=created, status_code=201)

    def update_tutorial(
        self,
        role: RoleLike,
        tutorial_id: str,
        payload: Union[TutorialInsert, dict[str, Any]],
    ) -> ServiceResult:
        if not authorize(role, Resource.TUTORIAL, Operation.WRITE):
            return self._forbidden()

        parsed = self._parse(payload)
        if isinstance(parsed, ServiceResult):
            return parsed
        changes = parsed.changes()
        if not changes:
            return ServiceResult(success=False, error="Nothing to update.", status_code=400)

        try:
            updated: Optional[Tutorial] = self._repo.update(tutorial_id, changes)
        except Exception as exc:
            self._logger.error("Failed to update tutorial %s: %s", tutorial_id, exc)
            return ServiceResult(success=False, error=f"Could not update tutorial: {exc}", status_code=500)
        if updated is None:
            return ServiceResult(success=False, error="Tutorial not found.", status_code=404)

        self._audit.record(
            AuditAction.UPDATE_TUTORIAL,
            {"title": changes.get("title") or tutorial_id},
        )
        return ServiceResult(success=True, data=updated)

    def delete_tutorial(
        self,
        role: RoleLike,
        tutorial_id: str,
        title: Optional[str] = None,
    ) -> ServiceResult:
        if not authorize(role, Resource.TUTORIAL, Operation.WRITE):
            return self._forbidden()

        try:
            deleted = self._repo.delete(tutorial_id)
        except Exception as exc:
            self._logger.error("Failed to delete tutorial %s: %s", tutorial_id, exc)
            return ServiceResult(success=False, error=f"Could not delete tutorial: {exc}", status_code=500)
        if not deleted:
            return ServiceResult(success=False, error="Tutorial not found.", status_code=404)

        self._audit.record(AuditAction.DELETE_TUTORIAL, {"title": title or tutorial_id})
        return ServiceResult(success=True, data={"id": tutorial_id})

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _forbidden() -> ServiceResult:
        return ServiceResult(
            success=False,
            error="Only administrators can manage tutorials.",
            status_code=403,
        )

    @staticmethod
    def _parse(payload: Union[TutorialInsert, dict[str, Any]]) -> Union[TutorialInsert, ServiceResult]:
        if isinstance(payload, TutorialInsert):
            return payload
        try:
            return TutorialInsert(**payload)
        except ValidationError as exc:
            return ServiceResult(success=False, error=str(exc), status_code=400)
