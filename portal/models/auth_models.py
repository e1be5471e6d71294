"""
Authentication Pipeline Models.

Pydantic models and enumerations for the auth request/response
contracts between the session state machine and its callers.

Every auth operation returns a structured, inspectable result rather
than raw strings or exception side-channels.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from portal.models.enums import Role, SessionState


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Exhaustive enumeration of authentication error categories.

    Only ``INVALID_CREDENTIALS``, ``PROFILE_NOT_FOUND`` and
    ``TIMEOUT_ERROR`` come out of the sign-in state machine; the rest
    classify pre-flight validation and transport failures.
    """

    INVALID_CREDENTIALS = "invalid_credentials"
    PROFILE_NOT_FOUND = "profile_not_found"
    TIMEOUT_ERROR = "timeout_error"
    USER_BANNED = "user_banned"
    NETWORK_ERROR = "network_error"
    VALIDATION_ERROR = "validation_error"
    FEATURE_DISABLED = "feature_disabled"
    SESSION_EXPIRED = "session_expired"
    ALREADY_IN_PROGRESS = "already_in_progress"
    UNKNOWN_ERROR = "unknown_error"


# ---------------------------------------------------------------------------
# User-facing messages
# ---------------------------------------------------------------------------

MSG_INVALID_CREDENTIALS: str = "Incorrect email or password."
MSG_PROFILE_NOT_FOUND: str = (
    "Account not found. Your authentication succeeded but your user "
    "profile is not set up. Please contact an administrator."
)
MSG_TIMEOUT: str = (
    "Login is taking too long. Your account may not be properly "
    "configured. Please contact an administrator."
)


# ---------------------------------------------------------------------------
# Supabase error-code mapping
# ---------------------------------------------------------------------------

SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        MSG_INVALID_CREDENTIALS,
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        MSG_INVALID_CREDENTIALS,
    ),
    "invalid_grant": (
        AuthErrorCode.INVALID_CREDENTIALS,
        MSG_INVALID_CREDENTIALS,
    ),
    "email not confirmed": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Please confirm your email address before signing in.",
    ),
    "otp_expired": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "The sign-in link has expired. Please request a new one.",
    ),
    "user_banned": (
        AuthErrorCode.USER_BANNED,
        "Your account has been deactivated. Contact your administrator.",
    ),
}


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Unified auth response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Unified response for sign-in, magic-link and sign-out operations.

    Attributes
    ----------
    success:
        ``True`` when the operation reached ``AUTHENTICATED`` (sign-in)
        or completed without error (other flows).
    state:
        Session state after the operation was applied.
    error_code:
        Structured error category (``None`` on success).
    error_message:
        Human-readable error description (``None`` on success).
    user_id:
        Supabase UUID of the verified identity, when known.
    email:
        Email of the verified identity, when known.
    role:
        Effective role after sign-in (may be the runtime-only ``SUDO``).
    """

    success: bool
    state: Optional[SessionState] = None
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: Optional[Role] = None


class MagicLinkResult(BaseModel):
    """Outcome of a magic-link send request."""

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
