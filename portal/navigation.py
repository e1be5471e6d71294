"""
Navigation Seam.

The state machine and the route guard decide *where* the user should
go; a ``Navigator`` carries it out.  A web front end would wrap its
router; :class:`HeadlessNavigator` records redirects for the CLI entry
point and for tests.
"""

from __future__ import annotations

from typing import Optional, Protocol

from portal.logger import StructuredLogger


class Navigator(Protocol):
    """Anything that knows the current path and can redirect."""

    @property
    def current_path(self) -> str: ...

    def redirect(self, path: str, *, access_denied: bool = False) -> None: ...


class HeadlessNavigator:
    """In-memory navigator that remembers every redirect it was asked for."""

    def __init__(
        self,
        initial_path: str = "/",
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._current_path: str = initial_path
        self._logger = logger
        self.history: list[tuple[str, bool]] = []

    @property
    def current_path(self) -> str:
        return self._current_path

    def visit(self, path: str) -> None:
        """Move to *path* without recording a redirect."""
        self._current_path = path

    def redirect(self, path: str, *, access_denied: bool = False) -> None:
        self.history.append((path, access_denied))
        self._current_path = path
        if self._logger is not None:
            self._logger.info(
                "Redirect to %s", path, extra={"access_denied": access_denied},
            )
