"""
Magic-Link Sender.

Sends passwordless sign-in links through Supabase Auth
(``sign_in_with_otp``).  The link lands on ``/auth/v2/verify`` carrying
the audience the user chose; completion is handled by
:meth:`SessionStateMachine.sign_in_with_magic_link`.

Only STAFF and STUDENT links exist.  When staff-domain enforcement is on
and a staff domain is configured, staff links are only sent to addresses
in that domain.
"""

from __future__ import annotations

from typing import Union

from portal.config import AppConfig
from portal.database import DatabaseManager
from portal.feature_flags import FeatureFlags
from portal.logger import StructuredLogger
from portal.models.auth_models import AuthErrorCode, MagicLinkResult
from portal.models.enums import AuditAction, AuthProvider, Role, TUTORIAL_TARGET_ROLES
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.services.route_registry import V2_VERIFY_PATH
from portal.utils.validation import normalize_email, validate_email


class MagicLinkService(BaseService):
    """Validates and sends magic-link emails."""

    def __init__(
        self,
        db: DatabaseManager,
        config: AppConfig,
        flags: FeatureFlags,
        audit: AuditService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._config = config
        self._flags = flags
        self._audit = audit

    @property
    def enforces_staff_domain(self) -> bool:
        """``True`` when the flag is on *and* a staff domain is configured."""
        return self._flags.staff_domain_enforcement and bool(self._config.staff_domain)

    def is_staff_email(self, email: str) -> bool:
        """Whether *email* belongs to the configured staff domain.

        Without a configured domain every address qualifies.
        """
        domain = self._config.staff_domain
        if not domain:
            return True
        return normalize_email(email).endswith(f"@{domain}")

    def redirect_url_for(self, role: Role) -> str:
        base = self._config.MAGIC_LINK_REDIRECT_URL.rstrip("/")
        return f"{base}{V2_VERIFY_PATH}?role={role}"

    def send_magic_link(
        self,
        email: str,
        intended_role: Union[Role, str],
    ) -> MagicLinkResult:
        """Send a sign-in link to *email* for the *intended_role* audience."""
        if not self._flags.magic_link:
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.FEATURE_DISABLED,
                error_message="Magic link authentication is not currently available.",
            )

        try:
            role = Role(intended_role)
        except ValueError:
            role = None
        if role not in TUTORIAL_TARGET_ROLES:
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message="Magic links are only available for staff and students.",
            )

        check = validate_email(email)
        if not check.is_valid:
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=check.error_message,
            )
        normalized = normalize_email(email)

        if role == Role.STAFF and self.enforces_staff_domain and not self.is_staff_email(normalized):
            self._audit.record(
                AuditAction.STAFF_DOMAIN_VALIDATION_FAILURE,
                {"email": normalized},
            )
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=(
                    f"Staff must use their @{self._config.staff_domain} "
                    "university email address."
                ),
            )

        try:
            self._db.supabase.auth.sign_in_with_otp(
                {
                    "email": normalized,
                    "options": {
                        "email_redirect_to": self.redirect_url_for(role),
                        "data": {
                            "intended_role": str(role),
                            "auth_provider": str(AuthProvider.MAGIC_LINK),
                        },
                    },
                }
            )
        except RuntimeError:
            self._logger.error("Supabase client not initialized for magic link.")
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="The authentication service is not configured.",
            )
        except Exception as exc:
            self._logger.warning("Magic link send failed for %s: %s", normalized, exc)
            self._audit.record(
                AuditAction.MAGIC_LINK_FAILED,
                {"email": normalized, "role": str(role), "error": str(exc)},
            )
            return MagicLinkResult(
                success=False,
                error_code=AuthErrorCode.UNKNOWN_ERROR,
                error_message=str(exc) or "Failed to send magic link.",
            )

        self._logger.info("Magic link sent to %s (%s)", normalized, role)
        self._audit.record(
            AuditAction.MAGIC_LINK_SENT,
            {"email": normalized, "role": str(role)},
        )
        return MagicLinkResult(success=True)
