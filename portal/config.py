"""
Application Configuration.

Pydantic Settings model for the tutorial portal.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # --- Feature flags (all default to off) ---
    ENABLE_MAGIC_LINK_AUTH: bool = False
    ENABLE_STAFF_DOMAIN_ENFORCEMENT: bool = False
    ENABLE_SUDO_ADMIN: bool = False

    # --- Authentication ---
    STAFF_EMAIL_DOMAIN: str = ""  # without the leading "@"
    SUDO_ADMIN_EMAIL: str = ""
    MAGIC_LINK_REDIRECT_URL: str = "http://localhost:5173"
    LOGIN_TIMEOUT_S: float = 10.0

    # --- Audit trail ---
    AUDIT_LOG_LIMIT: int = 500

    # --- Logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "portal.log"  # empty for console only
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _check_auth_settings(self) -> "AppConfig":
        """Reject incomplete SUDO settings and warn on empty critical values.

        A SUDO override without an override address would silently never
        match, so it is treated as a startup error rather than a warning.
        """
        _log = logging.getLogger("portal.config")

        if self.ENABLE_SUDO_ADMIN and not self.SUDO_ADMIN_EMAIL.strip():
            raise ValueError(
                "ENABLE_SUDO_ADMIN is set but SUDO_ADMIN_EMAIL is empty."
            )

        if not Path(".env").exists():
            _log.warning(
                "No .env file found: all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; authentication and data access "
                "are unavailable."
            )

        if self.ENABLE_STAFF_DOMAIN_ENFORCEMENT and not self.STAFF_EMAIL_DOMAIN:
            _log.warning(
                "ENABLE_STAFF_DOMAIN_ENFORCEMENT is set but STAFF_EMAIL_DOMAIN "
                "is empty; staff domain enforcement stays inactive."
            )

        if self.LOGIN_TIMEOUT_S <= 0:
            raise ValueError("LOGIN_TIMEOUT_S must be positive.")

        if self.LOG_LEVEL.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL {self.LOG_LEVEL!r} is not a logging level.")

        return self

    @property
    def staff_domain(self) -> str:
        """Configured staff domain, lower-cased and without a leading ``@``."""
        return self.STAFF_EMAIL_DOMAIN.strip().lstrip("@").lower()


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern to avoid the lock overhead on the fast path while remaining
    thread-safe during first initialisation.

    Prefer direct constructor injection of ``AppConfig``; this factory
    exists for the entry point.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
