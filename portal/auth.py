"""
Authentication & Session State.

Provides an injectable ``SessionManager`` that holds the current
``SessionSnapshot`` for the lifetime of one client session.  Only the
session state machine writes to it; everything else reads.

Usage::

    from portal.auth import SessionManager

    session = SessionManager()
    snapshot = session.snapshot
    if snapshot.is_authenticated:
        print(snapshot.effective_role)
"""

from __future__ import annotations

import threading
from typing import Optional

from portal.models.enums import Role, SessionState
from portal.models.profile import Identity, Profile
from portal.models.session import SessionSnapshot


class SessionManager:
    """Injectable holder for the current session.

    Each instance maintains its own session state, eliminating the
    need for module-level globals.  Pass a single ``SessionManager``
    through your dependency-injection layer so every component shares
    the same session.
    """

    def __init__(self) -> None:
        self._lock: threading.RLock = threading.RLock()
        self._snapshot: SessionSnapshot = SessionSnapshot()
        self._resume_path: Optional[str] = None

    # -- Snapshot -------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        """The current immutable session snapshot."""
        with self._lock:
            return self._snapshot

    def replace(self, snapshot: SessionSnapshot) -> SessionSnapshot:
        """Swap in *snapshot* and return the previous one."""
        with self._lock:
            previous = self._snapshot
            self._snapshot = snapshot
            return previous

    def clear(self) -> None:
        """Reset to an anonymous session, keeping the resume path."""
        with self._lock:
            self._snapshot = SessionSnapshot()

    # -- Convenience readers --------------------------------------------------

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._snapshot.state

    @property
    def identity(self) -> Optional[Identity]:
        with self._lock:
            return self._snapshot.identity

    @property
    def profile(self) -> Optional[Profile]:
        with self._lock:
            return self._snapshot.profile

    @property
    def effective_role(self) -> Optional[Role]:
        with self._lock:
            return self._snapshot.effective_role

    @property
    def is_authenticated(self) -> bool:
        """``True`` when identity and profile are both resolved."""
        with self._lock:
            return self._snapshot.is_authenticated

    def current_actor(self) -> tuple[Optional[str], Optional[str]]:
        """``(actor_id, actor_role)`` for audit attribution.

        The role is the effective role (possibly ``SUDO``), falling back
        to ``None`` for anonymous or profile-less sessions.
        """
        with self._lock:
            identity = self._snapshot.identity
            role = self._snapshot.effective_role
            return (
                identity.id if identity is not None else None,
                str(role) if role is not None else None,
            )

    # -- Post-login resume path -----------------------------------------------

    def remember_resume_path(self, path: Optional[str]) -> None:
        """Record the protected path a login redirect interrupted."""
        with self._lock:
            self._resume_path = path

    def pop_resume_path(self) -> Optional[str]:
        """Return and forget the remembered resume path."""
        with self._lock:
            path = self._resume_path
            self._resume_path = None
            return path
