"""
Route Guard.

Decides, for one navigation, whether a view renders, waits on a pending
sign-in, or redirects.  The guard is a pure function of session state,
effective role and the route's metadata; it never touches the backend.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional, Union

from pydantic import BaseModel

from portal.logger import StructuredLogger
from portal.models.enums import Role, SessionState
from portal.services.policy import route_admits
from portal.services.route_registry import DASHBOARD_PATH, RouteEntry, RouteRegistry


class DecisionKind(StrEnum):
    RENDER = "RENDER"
    LOADING = "LOADING"
    REDIRECT_LOGIN = "REDIRECT_LOGIN"
    REDIRECT_FALLBACK = "REDIRECT_FALLBACK"


class RouteDecision(BaseModel):
    """Outcome of a guard check.

    Attributes
    ----------
    kind:
        What the caller should do.
    path:
        Redirect target for the two redirect kinds.
    resume_path:
        The originally requested path, carried on login redirects so the
        user lands back there after signing in.
    access_denied:
        Set on fallback redirects so the destination can explain why.
    """

    kind: DecisionKind
    path: Optional[str] = None
    resume_path: Optional[str] = None
    access_denied: bool = False

    model_config = {"frozen": True}

    @property
    def is_redirect(self) -> bool:
        return self.kind in (DecisionKind.REDIRECT_LOGIN, DecisionKind.REDIRECT_FALLBACK)


_RENDER = RouteDecision(kind=DecisionKind.RENDER)
_LOADING = RouteDecision(kind=DecisionKind.LOADING)


class RouteGuard:
    """Render-or-redirect decisions for protected views.

    Parameters
    ----------
    registry:
        Route table used to resolve paths and sign-in entry points.
    logger:
        Structured logger; denials are logged at INFO.
    fallback_path:
        Where authenticated users without access are sent.
    """

    def __init__(
        self,
        registry: RouteRegistry,
        logger: StructuredLogger,
        fallback_path: str = DASHBOARD_PATH,
    ) -> None:
        self._registry = registry
        self._logger = logger
        self._fallback_path = fallback_path

    def decide(
        self,
        state: SessionState,
        effective_role: Union[Role, str, None],
        route: RouteEntry,
        requested_path: Optional[str] = None,
    ) -> RouteDecision:
        """Decide what to do with a request for *route*.

        *requested_path* is the concrete path asked for (it may be deeper
        than ``route.path``); it defaults to the route's own path.
        """
        target = requested_path or route.path

        if not route.protected:
            return _RENDER

        if state == SessionState.AUTHENTICATING:
            return _LOADING

        if state != SessionState.AUTHENTICATED:
            return RouteDecision(
                kind=DecisionKind.REDIRECT_LOGIN,
                path=self._registry.login_path_for(target),
                resume_path=target,
            )

        if route_admits(route.required_roles, effective_role):
            return _RENDER

        self._logger.info(
            "Access denied to %s for role %s", target, effective_role or "none",
        )
        return RouteDecision(
            kind=DecisionKind.REDIRECT_FALLBACK,
            path=self._fallback_path,
            access_denied=True,
        )

    def decide_path(
        self,
        state: SessionState,
        effective_role: Union[Role, str, None],
        path: str,
    ) -> RouteDecision:
        """Like :meth:`decide`, resolving *path* through the registry.

        Unregistered paths render (the not-found view is public).
        """
        route = self._registry.match(path)
        if route is None:
            return _RENDER
        return self.decide(state, effective_role, route, requested_path=path)
