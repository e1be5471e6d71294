"""
Session Snapshot Model.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel

from portal.models.auth_models import AuthErrorCode
from portal.models.enums import Role, SessionState
from portal.models.profile import Identity, Profile


class SessionSnapshot(BaseModel):
    """Immutable view of the session at one point in time.

    ``effective_role`` may be ``SUDO`` even though ``profile.role`` never
    is; authorization decisions use the effective role.
    """

    state: SessionState = SessionState.ANONYMOUS
    identity: Optional[Identity] = None
    profile: Optional[Profile] = None
    effective_role: Optional[Role] = None
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None

    model_config = {"frozen": True}

    @property
    def is_loading(self) -> bool:
        return self.state == SessionState.AUTHENTICATING

    @property
    def is_authenticated(self) -> bool:
        return self.state == SessionState.AUTHENTICATED
