"""
Portal Context.

The one process-wide object holding everything a client session needs:
configuration, feature flags, the Supabase connection, the session, the
route table and the wired services.  It is created explicitly and passed
by reference; nothing in the portal imports it as a global.

Lifecycle::

    with PortalContext.from_config(get_config(), navigator) as ctx:
        ctx.session_machine.sign_in(email, password)

``__enter__`` calls :meth:`init` (restore the stored session, subscribe
to auth events); ``__exit__`` calls :meth:`teardown` (unsubscribe,
cancel the sign-in timer).
"""

from __future__ import annotations

from types import TracebackType
from typing import Optional

from portal.auth import SessionManager
from portal.config import AppConfig
from portal.database import DatabaseManager
from portal.feature_flags import FeatureFlags
from portal.logger import StructuredLogger, get_logger
from portal.models.session import SessionSnapshot
from portal.navigation import HeadlessNavigator, Navigator
from portal.services import ServiceContainer, create_services
from portal.services.route_guard import DecisionKind, RouteDecision, RouteGuard
from portal.services.route_registry import RouteRegistry, build_default_registry
from portal.services.session_machine import Scheduler, SessionStateMachine


class PortalContext:
    """Owns the portal's dependency graph and its init/teardown lifecycle."""

    def __init__(
        self,
        config: AppConfig,
        db: DatabaseManager,
        navigator: Optional[Navigator] = None,
        scheduler: Optional[Scheduler] = None,
        registry: Optional[RouteRegistry] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> None:
        self._logger: StructuredLogger = logger or get_logger("portal", config)
        self.config: AppConfig = config
        self.flags: FeatureFlags = FeatureFlags.from_config(config)
        self.db: DatabaseManager = db
        self.session: SessionManager = SessionManager()
        self.navigator: Navigator = navigator or HeadlessNavigator(logger=self._logger)
        self.registry: RouteRegistry = registry or build_default_registry(self._logger)
        self.services: ServiceContainer = create_services(
            db=db,
            config=config,
            flags=self.flags,
            session=self.session,
            registry=self.registry,
            navigator=self.navigator,
            scheduler=scheduler,
            logger=self._logger,
        )
        self._initialized: bool = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        navigator: Optional[Navigator] = None,
        logger: Optional[StructuredLogger] = None,
    ) -> "PortalContext":
        """Build a context with a Supabase connection from *config*."""
        db = DatabaseManager(
            supabase_url=config.SUPABASE_URL,
            supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
            logger=logger or get_logger("database", config),
        )
        return cls(config=config, db=db, navigator=navigator, logger=logger)

    # -- Shortcuts ------------------------------------------------------------

    @property
    def session_machine(self) -> SessionStateMachine:
        return self.services["session_machine"]

    @property
    def route_guard(self) -> RouteGuard:
        return self.services["route_guard"]

    # -- Navigation -----------------------------------------------------------

    def navigate(self, path: str) -> RouteDecision:
        """Run the route guard for *path* against the current session.

        Redirect decisions are carried out through the navigator.  A login
        redirect also remembers *path*, so the next successful sign-in of
        a member lands back on it.
        """
        snapshot = self.session.snapshot
        decision = self.route_guard.decide_path(
            snapshot.state, snapshot.effective_role, path,
        )
        if decision.kind == DecisionKind.REDIRECT_LOGIN:
            self.session.remember_resume_path(decision.resume_path)
        if decision.is_redirect and decision.path is not None:
            self.navigator.redirect(decision.path, access_denied=decision.access_denied)
        return decision

    # -- Lifecycle ------------------------------------------------------------

    def init(self) -> SessionSnapshot:
        """Log the flag state, restore any stored session and subscribe."""
        if self._initialized:
            return self.session.snapshot
        self.flags.log_state(self._logger)
        snapshot = self.session_machine.init()
        self._initialized = True
        return snapshot

    def teardown(self) -> None:
        """Unsubscribe from auth events and cancel pending timers."""
        if not self._initialized:
            return
        self.session_machine.teardown()
        self._initialized = False

    def __enter__(self) -> "PortalContext":
        self.init()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.teardown()
