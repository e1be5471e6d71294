"""
Session State Machine.

Drives the session through its lifecycle::

    ANONYMOUS --sign_in--> AUTHENTICATING
    AUTHENTICATING --credential rejected--> ANONYMOUS
    AUTHENTICATING --verified, no profile--> VERIFIED_NO_PROFILE
    AUTHENTICATING --verified, profile found--> AUTHENTICATED
    AUTHENTICATING --bounded wait expires--> ANONYMOUS (timeout)
    AUTHENTICATED --sign_out--> ANONYMOUS
    any --session invalidated (push)--> ANONYMOUS

Three independent sources can drive it: the caller of :meth:`sign_in`,
the Supabase auth-state listener, and the bounded-wait timer.  Each
sign-in is an *attempt* with its own id.  A terminal transition is
applied only while its attempt is still the active one, so a repeated
or late result (a success arriving after the timeout, a push event
racing the explicit call) is a no-op: no second audit event and no
second redirect.  When such a late success has already stored tokens
in the auth client, they are revoked so a later :meth:`restore` cannot
bring the abandoned session back.

State changes are serialized under one ``threading.RLock``.  Network
calls are made outside the lock so the timer can fire while a request
is still in flight.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Protocol, Union

from portal.auth import SessionManager
from portal.database import DatabaseManager
from portal.feature_flags import FeatureFlags
from portal.logger import StructuredLogger
from portal.models.auth_models import (
    MSG_PROFILE_NOT_FOUND,
    MSG_TIMEOUT,
    SUPABASE_ERROR_MAP,
    AuthErrorCode,
    AuthResult,
)
from portal.models.enums import AuditAction, AuthProvider, Role, SessionState
from portal.models.profile import Identity, Profile
from portal.models.session import SessionSnapshot
from portal.navigation import Navigator
from portal.repositories.profile_repository import ProfileRepository
from portal.services.audit_service import AuditService
from portal.services.base_service import BaseService
from portal.services.profile_provisioning import (
    ProfileProvisioningError,
    ProfileProvisioningService,
)
from portal.services.role_resolver import RoleResolver
from portal.services.route_registry import ADMIN_PATH, DASHBOARD_PATH, RouteRegistry, is_v2_path
from portal.utils.validation import normalize_email, validate_email

# Supabase auth-state events
EVENT_SIGNED_IN = "SIGNED_IN"
EVENT_SIGNED_OUT = "SIGNED_OUT"
EVENT_TOKEN_REFRESHED = "TOKEN_REFRESHED"
EVENT_USER_UPDATED = "USER_UPDATED"
EVENT_INITIAL_SESSION = "INITIAL_SESSION"

# Terminal results kept for callers that have not collected them yet.
_MAX_PENDING_RESULTS = 16


# ---------------------------------------------------------------------------
# Timer seam
# ---------------------------------------------------------------------------

class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Runs a callback once after a delay, in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """``Scheduler`` backed by daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

ProfileLoader = Callable[[Identity], Optional[Profile]]


class _Attempt:
    """One sign-in attempt.  ``load_profile`` resolves the profile step."""

    __slots__ = ("attempt_id", "method", "load_profile")

    def __init__(self, attempt_id: int, method: AuthProvider, load_profile: ProfileLoader) -> None:
        self.attempt_id = attempt_id
        self.method = method
        self.load_profile = load_profile


class SessionStateMachine(BaseService):
    """Single owner of session transitions.

    Parameters
    ----------
    db:
        Database manager; ``db.supabase.auth`` is the auth client.
    session:
        Shared session holder written by this machine only.
    profiles:
        Profile lookups for the password flow.
    provisioning:
        Find-or-create for the magic-link flow.
    resolver:
        Effective-role computation (SUDO override).
    audit:
        Best-effort audit recorder.
    registry:
        Route table; decides which paths need a session.
    navigator:
        Performs redirects.
    scheduler:
        Arms the bounded-wait timer.
    flags:
        Feature flags (magic link gating).
    logger:
        Structured logger.
    login_timeout_s:
        Bounded wait for one sign-in attempt.
    """

    def __init__(
        self,
        db: DatabaseManager,
        session: SessionManager,
        profiles: ProfileRepository,
        provisioning: ProfileProvisioningService,
        resolver: RoleResolver,
        audit: AuditService,
        registry: RouteRegistry,
        navigator: Navigator,
        scheduler: Scheduler,
        flags: FeatureFlags,
        logger: StructuredLogger,
        login_timeout_s: float = 10.0,
    ) -> None:
        super().__init__(logger)
        self._db = db
        self._session = session
        self._profiles = profiles
        self._provisioning = provisioning
        self._resolver = resolver
        self._audit = audit
        self._registry = registry
        self._navigator = navigator
        self._scheduler = scheduler
        self._flags = flags
        self._login_timeout_s = login_timeout_s

        self._lock: threading.RLock = threading.RLock()
        self._attempt_seq: int = 0
        self._active: Optional[_Attempt] = None
        self._timer: Optional[TimerHandle] = None
        self._results: dict[int, AuthResult] = {}
        self._subscription: Any = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._session.snapshot

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def has_pending_timer(self) -> bool:
        with self._lock:
            return self._timer is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> SessionSnapshot:
        """Restore an existing session and subscribe to auth events."""
        self.restore()
        try:
            self._subscription = self._db.supabase.auth.on_auth_state_change(
                self.handle_auth_event
            )
        except RuntimeError:
            self._logger.warning("Auth client unavailable; not subscribing to auth events.")
        except Exception as exc:
            self._logger.error("Failed to subscribe to auth events: %s", exc)
        return self._session.snapshot

    def teardown(self) -> None:
        """Unsubscribe, cancel any pending timer and abandon an in-flight sign-in."""
        with self._lock:
            self._cancel_timer()
            if self._active is not None:
                self._active = None
                self._session.clear()
            subscription, self._subscription = self._subscription, None

        if subscription is not None:
            try:
                subscription.unsubscribe()
            except Exception as exc:
                self._logger.warning("Auth subscription unsubscribe failed: %s", exc)

    def restore(self) -> SessionSnapshot:
        """Rebuild the session from the auth client's stored token.

        A restored session is not a new login: no audit event and no
        redirect.
        """
        try:
            auth_session = self._db.supabase.auth.get_session()
        except RuntimeError:
            return self._session.snapshot
        except Exception as exc:
            self._logger.warning("Could not restore session: %s", exc)
            return self._session.snapshot

        user = getattr(auth_session, "user", None) if auth_session else None
        if user is None:
            return self._session.snapshot

        identity = Identity.from_auth_user(user)
        profile = self._lookup_profile(identity)
        with self._lock:
            if self._session.state != SessionState.ANONYMOUS:
                return self._session.snapshot
            self._session.replace(self._resolved_snapshot(identity, profile))
        self._logger.info(
            "Session restored for %s (%s)", identity.email, self._session.state,
        )
        return self._session.snapshot

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> AuthResult:
        """Password sign-in.  Blocks until a terminal state is reached."""
        email = normalize_email(email or "")
        check = validate_email(email)
        if not check.is_valid:
            return self._rejected_input(check.error_message)
        if not password:
            return self._rejected_input("Password is required.")

        attempt, busy = self._begin_attempt(AuthProvider.PASSWORD, self._lookup_profile)
        if busy is not None:
            return busy

        try:
            response = self._db.supabase.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as exc:
            return self._fail_attempt(attempt, self._classify_error(exc))

        return self._resolve_attempt(attempt, getattr(response, "user", None))

    def sign_in_with_magic_link(
        self,
        token_hash: str,
        intended_role: Union[Role, str, None] = None,
    ) -> AuthResult:
        """Complete a magic-link sign-in from the emailed token hash.

        Same states, timer and idempotence as :meth:`sign_in`; the profile
        step creates a missing profile for the intended audience.
        """
        if not self._flags.magic_link:
            return AuthResult(
                success=False,
                state=self._session.state,
                error_code=AuthErrorCode.FEATURE_DISABLED,
                error_message="Magic link sign-in is not enabled.",
            )
        if not token_hash:
            return self._rejected_input("The sign-in link is incomplete.")

        def _load(identity: Identity) -> Optional[Profile]:
            try:
                return self._provisioning.ensure_profile(identity, intended_role)
            except ProfileProvisioningError as exc:
                self._logger.error("Magic link provisioning failed: %s", exc.message)
                return None

        attempt, busy = self._begin_attempt(AuthProvider.MAGIC_LINK, _load)
        if busy is not None:
            return busy

        try:
            response = self._db.supabase.auth.verify_otp(
                {"token_hash": token_hash, "type": "magiclink"}
            )
        except Exception as exc:
            return self._fail_attempt(attempt, self._classify_error(exc))

        return self._resolve_attempt(attempt, getattr(response, "user", None))

    # ------------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------------

    def sign_out(self) -> AuthResult:
        """Record the logout, drop the session, then revoke it server-side."""
        snapshot = self._session.snapshot
        if snapshot.state == SessionState.AUTHENTICATED:
            self._audit.record(
                AuditAction.LOGOUT,
                {"email": snapshot.identity.email if snapshot.identity else None},
            )

        with self._lock:
            self._cancel_timer()
            self._active = None
            self._session.clear()
            current_path = self._navigator.current_path

        # Leave protected pages before the SIGNED_OUT echo arrives.
        if self._registry.is_protected(current_path):
            self._navigator.redirect(self._registry.login_path_for(current_path))

        try:
            self._db.supabase.auth.sign_out()
        except RuntimeError:
            self._logger.debug("Auth client unavailable; skipping server-side sign_out.")
        except Exception as exc:
            self._logger.warning("Server-side sign_out failed: %s", exc)

        self._logger.info(
            "User signed out",
            extra={"event": "LOGOUT", "user_id": snapshot.identity.id if snapshot.identity else None},
        )
        return AuthResult(success=True, state=SessionState.ANONYMOUS)

    # ------------------------------------------------------------------
    # Push notifications
    # ------------------------------------------------------------------

    def handle_auth_event(self, event: Any, auth_session: Any) -> None:
        """Listener for ``supabase.auth.on_auth_state_change``."""
        event_name = str(getattr(event, "value", event))
        user = getattr(auth_session, "user", None) if auth_session is not None else None

        if event_name == EVENT_SIGNED_OUT or user is None:
            if event_name == EVENT_INITIAL_SESSION and self.state == SessionState.ANONYMOUS:
                return
            self._force_anonymous(event_name)
            return

        identity = Identity.from_auth_user(user)

        if event_name in (EVENT_TOKEN_REFRESHED, EVENT_USER_UPDATED):
            self._refresh_identity(identity)
            return

        if event_name == EVENT_SIGNED_IN:
            with self._lock:
                attempt = self._active
            if attempt is not None:
                self._complete(attempt, identity, attempt.load_profile(identity))
            else:
                # Nothing pending: an already-applied or abandoned sign-in.
                self._logger.debug("Ignoring %s with no pending attempt.", event_name)
                self._discard_late_session(identity)

    # ------------------------------------------------------------------
    # Transition helpers
    # ------------------------------------------------------------------

    def _begin_attempt(
        self,
        method: AuthProvider,
        load_profile: ProfileLoader,
    ) -> tuple[Optional[_Attempt], Optional[AuthResult]]:
        with self._lock:
            state = self._session.state
            if state == SessionState.AUTHENTICATING:
                return None, AuthResult(
                    success=False,
                    state=state,
                    error_code=AuthErrorCode.ALREADY_IN_PROGRESS,
                    error_message="A sign-in is already in progress.",
                )
            if state == SessionState.AUTHENTICATED:
                return None, AuthResult(
                    success=False,
                    state=state,
                    error_code=AuthErrorCode.ALREADY_IN_PROGRESS,
                    error_message="You are already signed in. Sign out first.",
                )

            self._attempt_seq += 1
            attempt = _Attempt(self._attempt_seq, method, load_profile)
            self._active = attempt
            self._session.replace(SessionSnapshot(state=SessionState.AUTHENTICATING))
            self._cancel_timer()
            self._timer = self._scheduler.call_later(
                self._login_timeout_s,
                lambda: self._on_timeout(attempt.attempt_id),
            )
        self._logger.debug("Sign-in attempt %d started (%s)", attempt.attempt_id, method)
        return attempt, None

    def _resolve_attempt(self, attempt: _Attempt, user: Any) -> AuthResult:
        if user is None:
            return self._fail_attempt(
                attempt,
                AuthResult(
                    success=False,
                    error_code=AuthErrorCode.INVALID_CREDENTIALS,
                    error_message=SUPABASE_ERROR_MAP["invalid_credentials"][1],
                ),
            )

        identity = Identity.from_auth_user(user)
        with self._lock:
            still_active = self._active is attempt
        if not still_active:
            self._discard_late_session(identity)
            return self._collect(attempt)
        self._complete(attempt, identity, attempt.load_profile(identity))
        return self._collect(attempt)

    def _complete(
        self,
        attempt: _Attempt,
        identity: Identity,
        profile: Optional[Profile],
    ) -> None:
        """Apply the verified outcome of *attempt* exactly once."""
        with self._lock:
            if self._active is not attempt:
                self._logger.debug(
                    "Ignoring verified result for inactive attempt %d", attempt.attempt_id,
                )
                return
            self._active = None
            self._cancel_timer()

            snapshot = self._resolved_snapshot(identity, profile)
            self._session.replace(snapshot)
            result = AuthResult(
                success=snapshot.is_authenticated,
                state=snapshot.state,
                error_code=snapshot.error_code,
                error_message=snapshot.error_message,
                user_id=identity.id,
                email=identity.email,
                role=snapshot.effective_role,
            )
            self._store_result(attempt.attempt_id, result)
            redirect_to = self._post_login_path(snapshot.effective_role) if result.success else None

        if not result.success:
            self._logger.warning(
                "Identity %s verified but has no profile", identity.id,
                extra={"event": "PROFILE_NOT_FOUND", "email": identity.email},
            )
            return

        self._logger.info(
            "User authenticated: %s (role: %s)", identity.email, snapshot.effective_role,
            extra={"event": "LOGIN", "user_id": identity.id},
        )
        self._audit.record(
            AuditAction.LOGIN,
            {"email": identity.email, "method": str(attempt.method)},
            actor_id=identity.id,
            actor_role=str(snapshot.effective_role),
        )
        if redirect_to is not None:
            self._navigator.redirect(redirect_to)

    def _fail_attempt(self, attempt: _Attempt, failure: AuthResult) -> AuthResult:
        with self._lock:
            if self._active is attempt:
                self._active = None
                self._cancel_timer()
                result = failure.model_copy(update={"state": SessionState.ANONYMOUS})
                self._session.replace(
                    SessionSnapshot(
                        error_code=result.error_code,
                        error_message=result.error_message,
                    )
                )
                self._store_result(attempt.attempt_id, result)
        return self._collect(attempt)

    def _on_timeout(self, attempt_id: int) -> None:
        with self._lock:
            if self._active is None or self._active.attempt_id != attempt_id:
                return
            self._active = None
            self._timer = None
            result = AuthResult(
                success=False,
                state=SessionState.ANONYMOUS,
                error_code=AuthErrorCode.TIMEOUT_ERROR,
                error_message=MSG_TIMEOUT,
            )
            self._session.replace(
                SessionSnapshot(error_code=result.error_code, error_message=result.error_message)
            )
            self._store_result(attempt_id, result)
        self._logger.warning(
            "Sign-in attempt %d timed out after %.1fs", attempt_id, self._login_timeout_s,
        )

    def _force_anonymous(self, event_name: str) -> None:
        """Drop the session after a remote sign-out or expiry."""
        with self._lock:
            previous = self._session.snapshot
            attempt = self._active
            self._active = None
            self._cancel_timer()
            # An anonymous snapshot keeps its error (a timeout message).
            if attempt is not None or previous.state != SessionState.ANONYMOUS:
                self._session.clear()
            if attempt is not None:
                self._store_result(
                    attempt.attempt_id,
                    AuthResult(
                        success=False,
                        state=SessionState.ANONYMOUS,
                        error_code=AuthErrorCode.SESSION_EXPIRED,
                        error_message="The session ended before sign-in completed.",
                    ),
                )
            current_path = self._navigator.current_path

        had_session = previous.state != SessionState.ANONYMOUS
        if previous.state == SessionState.AUTHENTICATED:
            actor_id = previous.identity.id if previous.identity else None
            actor_role = str(previous.effective_role) if previous.effective_role else None
            self._audit.record(
                AuditAction.LOGOUT,
                {"reason": event_name},
                actor_id=actor_id,
                actor_role=actor_role,
            )
            if is_v2_path(current_path):
                self._audit.record(
                    AuditAction.SESSION_EXPIRED_V2,
                    {"path": current_path},
                    actor_id=actor_id,
                    actor_role=actor_role,
                )
        if had_session:
            self._logger.info("Session ended by %s", event_name)

        if self._registry.is_protected(current_path) or (
            had_session and self._registry.requires_session(current_path)
        ):
            self._session.remember_resume_path(current_path)
            self._navigator.redirect(self._registry.login_path_for(current_path))

    def _discard_late_session(self, identity: Identity) -> None:
        """Revoke a session the auth client holds but the portal never adopted.

        A verification that completes after its attempt ended (timeout,
        forced expiry, teardown) still leaves tokens in the auth client,
        and the next :meth:`restore` would pick them up.  Only acts while
        the portal is anonymous with no attempt pending and the client's
        session belongs to *identity*.
        """
        with self._lock:
            if self._active is not None or self._session.state != SessionState.ANONYMOUS:
                return

        try:
            auth = self._db.supabase.auth
            held = auth.get_session()
            held_user = getattr(held, "user", None) if held else None
            if held_user is None or getattr(held_user, "id", None) != identity.id:
                return
            auth.sign_out()
        except RuntimeError:
            self._logger.debug("Auth client unavailable; nothing to revoke.")
            return
        except Exception as exc:
            self._logger.warning("Could not revoke late session for %s: %s", identity.id, exc)
            return

        self._logger.warning(
            "Revoked session for %s verified after its sign-in attempt ended", identity.email,
            extra={"event": "LATE_SIGN_IN_REVOKED", "user_id": identity.id},
        )

    def _refresh_identity(self, identity: Identity) -> None:
        with self._lock:
            snapshot = self._session.snapshot
            if snapshot.identity is None or snapshot.identity.id != identity.id:
                return
            self._session.replace(
                snapshot.model_copy(
                    update={
                        "identity": identity,
                        "effective_role": self._resolver.effective_role(
                            snapshot.profile, identity.email
                        )
                        if snapshot.profile is not None
                        else None,
                    }
                )
            )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _resolved_snapshot(
        self,
        identity: Identity,
        profile: Optional[Profile],
    ) -> SessionSnapshot:
        if profile is None:
            return SessionSnapshot(
                state=SessionState.VERIFIED_NO_PROFILE,
                identity=identity,
                error_code=AuthErrorCode.PROFILE_NOT_FOUND,
                error_message=MSG_PROFILE_NOT_FOUND,
            )
        return SessionSnapshot(
            state=SessionState.AUTHENTICATED,
            identity=identity,
            profile=profile,
            effective_role=self._resolver.effective_role(profile, identity.email),
        )

    def _lookup_profile(self, identity: Identity) -> Optional[Profile]:
        try:
            return self._profiles.get_by_id(identity.id)
        except Exception as exc:
            self._logger.error("Profile lookup failed for %s: %s", identity.id, exc)
            return None

    def _post_login_path(self, role: Optional[Role]) -> str:
        resume = self._session.pop_resume_path()
        if role in (Role.ADMIN, Role.SUDO):
            return ADMIN_PATH
        return resume or DASHBOARD_PATH

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _store_result(self, attempt_id: int, result: AuthResult) -> None:
        self._results[attempt_id] = result
        while len(self._results) > _MAX_PENDING_RESULTS:
            self._results.pop(next(iter(self._results)))

    def _collect(self, attempt: _Attempt) -> AuthResult:
        with self._lock:
            result = self._results.pop(attempt.attempt_id, None)
            if result is not None:
                return result
            return AuthResult(
                success=False,
                state=self._session.state,
                error_code=AuthErrorCode.UNKNOWN_ERROR,
                error_message="The sign-in attempt was superseded.",
            )

    def _rejected_input(self, message: Optional[str]) -> AuthResult:
        return AuthResult(
            success=False,
            state=self._session.state,
            error_code=AuthErrorCode.VALIDATION_ERROR,
            error_message=message,
        )

    def _classify_error(self, exc: Exception) -> AuthResult:
        """Map a Supabase or network exception to a structured ``AuthResult``."""
        if isinstance(exc, RuntimeError):
            self._logger.error("Auth client unavailable: %s", exc)
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="The authentication service is not configured.",
            )

        if isinstance(exc, (ConnectionError, TimeoutError)):
            self._logger.warning(
                "Network error during sign-in: %s", exc,
                extra={"event": "LOGIN_NETWORK_ERROR"},
            )
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="Cannot reach the server. Check your internet connection.",
            )

        error_str = str(exc).lower()
        for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
            if code_key in error_str:
                self._logger.warning(
                    "Auth error (%s): %s", code_key, exc,
                    extra={"event": "LOGIN_FAILED", "error_code": code_key},
                )
                return AuthResult(
                    success=False,
                    error_code=error_code,
                    error_message=human_message,
                )

        self._logger.warning(
            "Unknown sign-in error: %s", exc,
            extra={"event": "LOGIN_FAILED", "error_code": "unknown"},
        )
        return AuthResult(
            success=False,
            error_code=AuthErrorCode.UNKNOWN_ERROR,
            error_message="An unexpected error occurred. Please try again later.",
        )
