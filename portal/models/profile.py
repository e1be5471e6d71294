"""
Identity and Profile Models.

``Identity`` is the verified credential holder returned by Supabase Auth;
``Profile`` is the application row in ``public.users`` keyed 1:1 to it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from portal.models.enums import AuthProvider, Role


class Identity(BaseModel):
    """A verified Supabase Auth user.  Read-only to the application."""

    id: str  # Supabase UUID
    email: Optional[str] = None
    email_confirmed_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "frozen": True}

    @classmethod
    def from_auth_user(cls, user: Any) -> "Identity":
        """Build an ``Identity`` from a gotrue ``User`` (or compatible object)."""
        return cls(
            id=str(user.id),
            email=getattr(user, "email", None),
            email_confirmed_at=getattr(user, "email_confirmed_at", None),
        )


class Profile(BaseModel):
    """Represents a row in ``public.users``.

    ``email_verified`` and ``auth_provider`` are nullable because legacy
    rows predate the magic-link migration.
    """

    id: str
    id_number: str
    role: Role
    name: str
    email: Optional[str] = None
    is_active: bool = True
    email_verified: Optional[bool] = None
    auth_provider: Optional[AuthProvider] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("role")
    @classmethod
    def _reject_runtime_role(cls, value: Role) -> Role:
        if value == Role.SUDO:
            raise ValueError("SUDO is a runtime-only role and cannot be held by a profile")
        return value


class ProfileUpdate(BaseModel):
    """Partial update for a profile.  Unset fields are left untouched.

    ``role`` accepts the full ``Role`` enum so that the service layer
    sees a SUDO value and can block and audit it.
    """

    id_number: Optional[str] = None
    role: Optional[Role] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None
    email_verified: Optional[bool] = None
    auth_provider: Optional[AuthProvider] = None

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the caller, JSON-ready."""
        return self.model_dump(exclude_unset=True, mode="json")
