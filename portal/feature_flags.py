"""
Feature Flag Registry.

Single source of truth for every feature toggle.  Flags are resolved once
from ``AppConfig`` at startup into an immutable ``FeatureFlags`` snapshot
and injected into the services that need them.  No other module reads
flag values from the environment.
"""

from __future__ import annotations

from pydantic import BaseModel

from portal.config import AppConfig
from portal.logger import StructuredLogger


class FeatureFlags(BaseModel):
    """Immutable feature-flag snapshot for the process lifetime.

    Attributes
    ----------
    magic_link:
        Passwordless (OTP) sign-in via emailed links.
    staff_domain_enforcement:
        Restrict staff magic-link sign-in to the configured staff domain.
        Only effective when a staff domain is configured.
    sudo_admin:
        Runtime-only SUDO override for the configured override address.
    """

    magic_link: bool = False
    staff_domain_enforcement: bool = False
    sudo_admin: bool = False

    model_config = {"frozen": True}

    @classmethod
    def from_config(cls, config: AppConfig) -> "FeatureFlags":
        """Resolve the flag snapshot from *config*."""
        return cls(
            magic_link=config.ENABLE_MAGIC_LINK_AUTH,
            staff_domain_enforcement=config.ENABLE_STAFF_DOMAIN_ENFORCEMENT,
            sudo_admin=config.ENABLE_SUDO_ADMIN,
        )

    def is_enabled(self, name: str) -> bool:
        """Return the value of flag *name*.

        Raises:
            KeyError: If *name* is not a known flag.
        """
        if name not in type(self).model_fields:
            raise KeyError(f"Unknown feature flag '{name}'.")
        return bool(getattr(self, name))

    def enabled_features(self) -> list[str]:
        """Names of all enabled flags, in declaration order."""
        return [name for name in type(self).model_fields if getattr(self, name)]

    def log_state(self, logger: StructuredLogger) -> None:
        """Write the current flag state to *logger*."""
        logger.info(
            "Feature flags resolved. Enabled: %s",
            ", ".join(self.enabled_features()) or "none",
            extra={"flags": self.model_dump()},
        )
