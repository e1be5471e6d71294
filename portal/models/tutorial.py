"""
Tutorial Models.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from portal.models.enums import Role, TUTORIAL_TARGET_ROLES


def _check_target_role(value: Optional[Role]) -> Optional[Role]:
    if value is not None and value not in TUTORIAL_TARGET_ROLES:
        raise ValueError("target_role must be STAFF or STUDENT")
    return value


class Tutorial(BaseModel):
    """A row in ``public.tutorials``."""

    id: str
    title: str
    description: Optional[str] = None
    video_url: str
    portal_link: Optional[str] = None
    elearning_link: Optional[str] = None
    target_role: Role
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("target_role")
    @classmethod
    def _validate_target(cls, value: Role) -> Role:
        return _check_target_role(value)


class TutorialInsert(BaseModel):
    """Payload for creating or updating a tutorial."""

    title: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    portal_link: Optional[str] = None
    elearning_link: Optional[str] = None
    target_role: Optional[Role] = None

    @field_validator("target_role")
    @classmethod
    def _validate_target(cls, value: Optional[Role]) -> Optional[Role]:
        return _check_target_role(value)

    @field_validator("title", "video_url")
    @classmethod
    def _strip_required_text(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            raise ValueError("must not be blank")
        return value.strip() if value is not None else None

    def missing_for_create(self) -> list[str]:
        """Names of fields that must be present when creating a tutorial."""
        return [
            name
            for name in ("title", "video_url", "target_role")
            if getattr(self, name) is None
        ]

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the caller, JSON-ready."""
        return self.model_dump(exclude_unset=True, mode="json")
