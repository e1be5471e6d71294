"""
Database Abstraction Layer.

The portal is a thin client: all persistence, authentication and
row-level security live in a hosted Supabase project.  This module only
manages the Supabase *client*; it contains no query logic.  Data access
is performed through the Repository pattern.

Usage (dependency injection at app startup)::

    from portal.database import DatabaseManager
    from portal.logger import StructuredLogger

    db = DatabaseManager(
        supabase_url=settings.SUPABASE_URL,
        supabase_key=settings.SUPABASE_ANON_KEY.get_secret_value(),
        logger=StructuredLogger.from_config(settings, name="database"),
    )
    # Inject `db` into repositories / services that need it.
"""

from __future__ import annotations

from typing import Optional

from supabase import create_client, Client as SupabaseClient

from portal.logger import StructuredLogger


class DatabaseManager:
    """Owns the Supabase client for the process lifetime.

    Fully configured at construction time via dependency injection.

    When ``supabase_url`` or ``supabase_key`` is empty the client is
    **not** created and the portal runs without a backend.  Repository
    and service code already wraps Supabase calls in ``try/except``, so
    the ``RuntimeError`` raised by the ``supabase`` property surfaces as
    an ordinary failed result.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
    supabase_key:
        The Supabase anonymous key.  Row-level security is enforced
        server-side against the signed-in user's JWT.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    client:
        Pre-built client, used instead of ``create_client``.  Lets tests
        and alternative entry points supply their own client.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        logger: StructuredLogger,
        client: Optional[SupabaseClient] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._supabase: Optional[SupabaseClient] = client

        if self._supabase is not None:
            return

        if supabase_url and supabase_key:
            try:
                self._supabase = create_client(supabase_url, supabase_key)
                self._logger.info("Supabase client initialized.")
            except (ValueError, TypeError) as exc:
                self._logger.warning(
                    "Supabase credential format error: %s. Running without a backend.",
                    exc,
                )
            except Exception as exc:
                self._logger.error(
                    "Unexpected Supabase initialization failure: %s. "
                    "Running without a backend.",
                    exc,
                    exc_info=True,
                )
        else:
            self._logger.warning(
                "Supabase credentials not configured; running without a backend."
            )

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        """Return the initialised Supabase client.

        Raises
        ------
        RuntimeError
            If the Supabase client was not initialised.
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Check SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        return self._supabase

    @property
    def is_online(self) -> bool:
        """``True`` when a Supabase client is available."""
        return self._supabase is not None
