"""Input validation helpers shared by the auth flows."""

from __future__ import annotations

import re
from typing import Optional

from portal.models.auth_models import ValidationResult

__all__ = ["email_matches", "normalize_email", "validate_email"]

_EMAIL_RE: re.Pattern[str] = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+"
    r"@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


def email_matches(left: Optional[str], right: Optional[str]) -> bool:
    """Case- and surrounding-whitespace-insensitive email equality.

    Empty or missing values never match anything.
    """
    if not left or not right:
        return False
    a = left.strip().casefold()
    b = right.strip().casefold()
    return bool(a) and a == b


def validate_email(email: str) -> ValidationResult:
    """Validate an email address against a simplified RFC 5322 regex."""
    if not email or not email.strip():
        return ValidationResult(
            is_valid=False,
            error_message="Email address is required.",
        )
    if not _EMAIL_RE.match(email.strip()):
        return ValidationResult(
            is_valid=False,
            error_message="Please enter a valid email address.",
        )
    return ValidationResult(is_valid=True)
