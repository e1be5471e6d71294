"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase client)
- Logger reference
- A guarded read helper returning a typed default on failure
"""

from __future__ import annotations

from typing import Callable, Optional, TypeVar

from supabase import Client as SupabaseClient

from portal.database import DatabaseManager
from portal.logger import StructuredLogger

T = TypeVar("T")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        """Returns the Supabase client for cloud operations."""
        return self._db.supabase

    def _read(
        self,
        supabase_op: Callable[[], Optional[T]],
        default_factory: Callable[[], T],
        *,
        operation_name: str,
    ) -> T:
        """Execute a read, returning ``default_factory()`` on any failure.

        NOT intended for write paths: writes propagate their exceptions
        so the service layer can report them.

        Parameters
        ----------
        supabase_op:
            Zero-argument callable that performs the Supabase query.
            Returns the result or ``None`` if not found.
        default_factory:
            Zero-argument callable producing the typed default when the
            query fails or returns ``None``.
        operation_name:
            Human-readable label for log messages, e.g.
            ``"get_by_id (users)"``.
        """
        try:
            result = supabase_op()
            if result is not None:
                return result
        except Exception as exc:
            self._logger.warning(
                "Supabase unavailable for %s: %s", operation_name, exc
            )
        return default_factory()
