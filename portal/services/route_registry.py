"""Route Registry.

Central registry for every navigable path in the portal.  The route
guard and the session state machine query it to decide whether a path
needs a session, which roles it admits, and where a signed-out user
should be sent to sign in again.

Adding a new view = one ``register()`` call.
"""

from __future__ import annotations

from typing import Iterable, Optional

from portal.logger import StructuredLogger
from portal.models.enums import Role
from portal.services.policy import route_admits

LOGIN_PATH: str = "/login"
V2_PREFIX: str = "/auth/v2"
V2_LOGIN_PATH: str = "/auth/v2/login"
V2_VERIFY_PATH: str = "/auth/v2/verify"
DASHBOARD_PATH: str = "/dashboard"
ADMIN_PATH: str = "/admin"

_ADMIN_ROLES: frozenset[Role] = frozenset({Role.ADMIN, Role.SUDO})


def _normalize(path: str) -> str:
    path = (path or "/").split("?", 1)[0].split("#", 1)[0]
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/")
    return path


def is_v2_path(path: Optional[str]) -> bool:
    """``True`` for paths under ``/auth/v2``."""
    if not path:
        return False
    normalized = _normalize(path)
    return normalized == V2_PREFIX or normalized.startswith(V2_PREFIX + "/")


class RouteEntry:
    """Metadata for a single registered route.

    Attributes
    ----------
    path:
        Absolute path prefix (e.g. ``'/admin/users'``).
    display_name:
        Human-readable name for navigation menus.
    required_roles:
        Roles admitted to this route.  Empty means any signed-in user.
    protected:
        ``False`` for public pages (landing, sign-in, link verification).
    """

    __slots__ = ("path", "display_name", "required_roles", "protected")

    def __init__(
        self,
        path: str,
        display_name: str,
        required_roles: frozenset[Role],
        protected: bool,
    ) -> None:
        self.path = path
        self.display_name = display_name
        self.required_roles = required_roles
        self.protected = protected

    def __repr__(self) -> str:
        return f"RouteEntry({self.path!r}, protected={self.protected})"


class RouteRegistry:
    """Manages the collection of registered routes.

    Parameters
    ----------
    logger:
        Structured logger for registration events.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._entries: dict[str, RouteEntry] = {}
        self._logger = logger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def register(
        self,
        path: str,
        display_name: str,
        required_roles: Iterable[Role] = (),
        *,
        protected: bool = True,
    ) -> RouteEntry:
        """Register a route and return its entry.

        Re-registering a path overwrites the previous entry.
        """
        normalized = _normalize(path)
        if normalized in self._entries:
            self._logger.warning(
                "Route '%s' already registered; overwriting.", normalized,
            )
        entry = RouteEntry(
            path=normalized,
            display_name=display_name,
            required_roles=frozenset(Role(r) for r in required_roles),
            protected=protected,
        )
        self._entries[normalized] = entry
        self._logger.debug("Route registered: %s (%s)", normalized, display_name)
        return entry

    def match(self, path: str) -> Optional[RouteEntry]:
        """Return the entry with the longest prefix matching *path*."""
        normalized = _normalize(path)
        best: Optional[RouteEntry] = None
        for entry in self._entries.values():
            prefix = entry.path
            if prefix == "/":
                matched = normalized == "/"
            else:
                matched = normalized == prefix or normalized.startswith(prefix + "/")
            if matched and (best is None or len(prefix) > len(best.path)):
                best = entry
        return best

    def is_protected(self, path: Optional[str]) -> bool:
        """Whether *path* requires a session.  Unknown paths do not."""
        if not path:
            return False
        entry = self.match(path)
        return entry is not None and entry.protected

    def requires_session(self, path: Optional[str]) -> bool:
        """Whether losing an established session on *path* must redirect.

        Protected routes do, and so does every ``/auth/v2`` page except
        the v2 sign-in page itself.
        """
        if not path:
            return False
        if is_v2_path(path):
            return _normalize(path) != V2_LOGIN_PATH
        return self.is_protected(path)

    def routes_for_role(self, role: Optional[Role]) -> list[RouteEntry]:
        """Protected routes *role* may open, preserving registration order."""
        if role is None:
            return []
        return [
            entry
            for entry in self._entries.values()
            if entry.protected and route_admits(entry.required_roles, role)
        ]

    @staticmethod
    def login_path_for(path: Optional[str]) -> str:
        """Sign-in entry point for a user interrupted on *path*."""
        return V2_LOGIN_PATH if is_v2_path(path) else LOGIN_PATH

    def __len__(self) -> int:
        return len(self._entries)


def build_default_registry(logger: StructuredLogger) -> RouteRegistry:
    """The portal's standard route table."""
    registry = RouteRegistry(logger)
    registry.register("/", "Home", protected=False)
    registry.register(LOGIN_PATH, "Sign in", protected=False)
    registry.register(V2_LOGIN_PATH, "Sign in (magic link)", protected=False)
    registry.register(V2_VERIFY_PATH, "Verify sign-in link", protected=False)
    registry.register(DASHBOARD_PATH, "Dashboard")
    registry.register(ADMIN_PATH, "Administration", _ADMIN_ROLES)
    registry.register(f"{ADMIN_PATH}/tutorials", "Tutorials", _ADMIN_ROLES)
    registry.register(f"{ADMIN_PATH}/users", "Users", _ADMIN_ROLES)
    registry.register(f"{ADMIN_PATH}/logs", "Audit log", _ADMIN_ROLES)
    return registry
