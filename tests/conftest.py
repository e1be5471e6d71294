"""
Portal Test Configuration
=========================

Pytest fixtures for the portal tests.

The Supabase client is replaced by an in-memory fake exposing the small
slice of the ``supabase`` API the portal uses (``auth`` plus chained
``table()`` queries).  The bounded-wait timer runs on a manual clock so
timeouts are driven explicitly with ``scheduler.advance()``.
"""

from __future__ import annotations

import io
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Optional

import pytest

from portal.config import AppConfig
from portal.context import PortalContext
from portal.database import DatabaseManager
from portal.logger import StructuredLogger
from portal.models.enums import Role
from portal.navigation import HeadlessNavigator


# ---------------------------------------------------------------------------
# Fake Supabase client
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data: Any) -> None:
        self.data = data


class FakeQuery:
    """Chainable stand-in for a postgrest request builder."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self._client = client
        self._table = table
        self._action = "select"
        self._payload: Any = None
        self._filters: list[Callable[[dict[str, Any]], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None
        self._single = False

    # -- builders -----------------------------------------------------------

    def select(self, *_columns: str) -> "FakeQuery":
        self._action = "select"
        return self

    def insert(self, row: dict[str, Any]) -> "FakeQuery":
        self._action = "insert"
        self._payload = dict(row)
        return self

    def update(self, changes: dict[str, Any]) -> "FakeQuery":
        self._action = "update"
        self._payload = dict(changes)
        return self

    def delete(self) -> "FakeQuery":
        self._action = "delete"
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order = (column, desc)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self._limit = count
        return self

    def maybe_single(self) -> "FakeQuery":
        self._single = True
        return self

    # -- execution ----------------------------------------------------------

    def execute(self) -> Optional[FakeResponse]:
        failure = self._client.failures.get((self._table, self._action))
        if failure is not None:
            raise failure

        rows = self._client.tables.setdefault(self._table, [])

        if self._action == "insert":
            row = dict(self._payload)
            row.setdefault("id", str(uuid.uuid4()))
            row.setdefault("created_at", self._client.next_timestamp())
            rows.append(row)
            return FakeResponse([dict(row)])

        matched = [row for row in rows if all(f(row) for f in self._filters)]

        if self._action == "update":
            for row in matched:
                row.update(self._payload)
            return FakeResponse([dict(row) for row in matched])

        if self._action == "delete":
            self._client.tables[self._table] = [row for row in rows if row not in matched]
            return FakeResponse([dict(row) for row in matched])

        if self._order is not None:
            column, desc = self._order
            matched = sorted(matched, key=lambda row: str(row.get(column) or ""), reverse=desc)
        if self._limit is not None:
            matched = matched[: self._limit]
        if self._single:
            # postgrest-py returns None for an empty maybe_single() result
            return FakeResponse(dict(matched[0])) if matched else None
        return FakeResponse([dict(row) for row in matched])


class FakeSubscription:
    def __init__(self, auth: "FakeAuth", callback: Callable[[str, Any], None]) -> None:
        self._auth = auth
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._auth.listeners:
            self._auth.listeners.remove(self._callback)


class FakeAuth:
    """In-memory stand-in for ``supabase.auth``.

    Like the real client, a successful sign-in notifies subscribers with
    ``SIGNED_IN`` before the call returns.
    """

    def __init__(self) -> None:
        self.accounts: dict[str, tuple[SimpleNamespace, str]] = {}
        self.otp_tokens: dict[str, SimpleNamespace] = {}
        self.listeners: list[Callable[[str, Any], None]] = []
        self.current_session: Optional[SimpleNamespace] = None
        self.sent_links: list[dict[str, Any]] = []
        self.sign_in_error: Optional[Exception] = None
        self.otp_send_error: Optional[Exception] = None
        self.sign_out_calls = 0
        self.notify_on_sign_in = True
        # Invoked inside a credential call before it returns (simulated latency).
        self.during_call: Optional[Callable[[], None]] = None

    # -- seeding ------------------------------------------------------------

    def add_user(self, email: str, password: str = "", user_id: Optional[str] = None) -> SimpleNamespace:
        user = SimpleNamespace(
            id=user_id or str(uuid.uuid4()),
            email=email,
            email_confirmed_at=None,
        )
        self.accounts[email.strip().lower()] = (user, password)
        return user

    def add_otp(self, token_hash: str, user: SimpleNamespace) -> None:
        self.otp_tokens[token_hash] = user

    def emit(self, event: str, session: Any) -> None:
        for callback in list(self.listeners):
            callback(event, session)

    @staticmethod
    def session_for(user: SimpleNamespace) -> SimpleNamespace:
        return SimpleNamespace(user=user, access_token=f"token-{user.id}")

    # -- gotrue surface -----------------------------------------------------

    def sign_in_with_password(self, credentials: dict[str, str]) -> SimpleNamespace:
        if self.during_call is not None:
            self.during_call()
        if self.sign_in_error is not None:
            raise self.sign_in_error
        account = self.accounts.get(credentials["email"])
        if account is None or account[1] != credentials["password"]:
            raise Exception("Invalid login credentials")
        return self._signed_in(account[0])

    def verify_otp(self, params: dict[str, str]) -> SimpleNamespace:
        if self.during_call is not None:
            self.during_call()
        user = self.otp_tokens.pop(params["token_hash"], None)
        if user is None:
            raise Exception("Email link is invalid or has expired (otp_expired)")
        return self._signed_in(user)

    def sign_in_with_otp(self, params: dict[str, Any]) -> SimpleNamespace:
        if self.otp_send_error is not None:
            raise self.otp_send_error
        self.sent_links.append(params)
        return SimpleNamespace(user=None, session=None)

    def get_session(self) -> Optional[SimpleNamespace]:
        return self.current_session

    def on_auth_state_change(self, callback: Callable[[str, Any], None]) -> FakeSubscription:
        self.listeners.append(callback)
        return FakeSubscription(self, callback)

    def sign_out(self) -> None:
        self.sign_out_calls += 1
        self.current_session = None
        self.emit("SIGNED_OUT", None)

    def _signed_in(self, user: SimpleNamespace) -> SimpleNamespace:
        session = self.session_for(user)
        self.current_session = session
        if self.notify_on_sign_in:
            self.emit("SIGNED_IN", session)
        return SimpleNamespace(user=user, session=session)


class FakeSupabase:
    """Minimal ``supabase.Client`` double: ``auth`` plus ``table()``."""

    def __init__(self) -> None:
        self.auth = FakeAuth()
        self.tables: dict[str, list[dict[str, Any]]] = {
            "users": [],
            "tutorials": [],
            "audit_logs": [],
        }
        # (table, action) -> exception raised by execute()
        self.failures: dict[tuple[str, str], Exception] = {}
        self._clock = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def next_timestamp(self) -> str:
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def audit_actions(self) -> list[str]:
        return [row["action"] for row in self.tables["audit_logs"]]


# ---------------------------------------------------------------------------
# Manual clock
# ---------------------------------------------------------------------------

class ManualTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """``Scheduler`` whose timers only fire when the clock is advanced."""

    def __init__(self) -> None:
        self.now = 0.0
        self.timers: list[ManualTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(self.now + delay, callback)
        self.timers.append(timer)
        return timer

    def advance(self, seconds: float) -> None:
        self.now += seconds
        for timer in list(self.timers):
            if not timer.cancelled and not timer.fired and timer.due <= self.now:
                timer.fired = True
                timer.callback()

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]


# ---------------------------------------------------------------------------
# Harness
# ---------------------------------------------------------------------------

class PortalHarness:
    """A wired ``PortalContext`` over the fakes, plus seeding helpers."""

    def __init__(
        self,
        config: AppConfig,
        logger: StructuredLogger,
        initial_path: str = "/",
    ) -> None:
        self.fake = FakeSupabase()
        self.scheduler = ManualScheduler()
        self.navigator = HeadlessNavigator(initial_path=initial_path)
        self.db = DatabaseManager(
            supabase_url="",
            supabase_key="",
            logger=logger,
            client=self.fake,
        )
        self.context = PortalContext(
            config=config,
            db=self.db,
            navigator=self.navigator,
            scheduler=self.scheduler,
            logger=logger,
        )

    @property
    def machine(self):
        return self.context.session_machine

    @property
    def services(self):
        return self.context.services

    def add_account(
        self,
        email: str,
        password: str = "correct-horse",
        role: Optional[Role] = Role.STUDENT,
        **profile_fields: Any,
    ) -> SimpleNamespace:
        """Create an auth user and, unless *role* is ``None``, its profile."""
        user = self.fake.auth.add_user(email, password)
        if role is not None:
            self.add_profile(user.id, role, email=email, **profile_fields)
        return user

    def add_profile(self, user_id: str, role: Role, **fields: Any) -> dict[str, Any]:
        row = {
            "id": user_id,
            "id_number": fields.pop("id_number", f"ID-{user_id[:8]}"),
            "role": str(role),
            "name": fields.pop("name", "Test User"),
            "email": fields.pop("email", None),
            "is_active": True,
            "email_verified": fields.pop("email_verified", True),
            "auth_provider": fields.pop("auth_provider", "password"),
            "created_at": self.fake.next_timestamp(),
            **fields,
        }
        self.fake.tables["users"].append(row)
        return row

    def add_tutorial(self, title: str, target_role: Role) -> dict[str, Any]:
        row = {
            "id": str(uuid.uuid4()),
            "title": title,
            "video_url": f"https://videos.example/{title.lower().replace(' ', '-')}",
            "target_role": str(target_role),
            "created_at": self.fake.next_timestamp(),
        }
        self.fake.tables["tutorials"].append(row)
        return row

    def sign_in(self, email: str, password: str = "correct-horse"):
        return self.machine.sign_in(email, password)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(tmp_path, log_stream) -> StructuredLogger:
    """A logger with its own name so handlers never leak between tests."""
    return StructuredLogger(
        name=f"portal-test-{uuid.uuid4().hex}",
        stream=log_stream,
        log_file=str(tmp_path / "portal.log"),
        max_bytes=1_048_576,
        backup_count=1,
    )


@pytest.fixture
def make_config() -> Callable[..., AppConfig]:
    """Build an ``AppConfig`` from keyword overrides, ignoring any .env file."""

    def _make(**overrides: Any) -> AppConfig:
        values: dict[str, Any] = {
            "SUPABASE_URL": "https://portal-test.supabase.co",
            "SUPABASE_ANON_KEY": "anon-test-key",
        }
        values.update(overrides)
        return AppConfig(_env_file=None, **values)

    return _make


@pytest.fixture
def config(make_config) -> AppConfig:
    return make_config()


@pytest.fixture
def make_harness(make_config, logger) -> Callable[..., PortalHarness]:
    """Factory for a wired portal; keyword arguments override config values."""
    created: list[PortalHarness] = []

    def _make(initial_path: str = "/", init: bool = True, **overrides: Any) -> PortalHarness:
        harness = PortalHarness(make_config(**overrides), logger, initial_path=initial_path)
        if init:
            harness.context.init()
        created.append(harness)
        return harness

    yield _make

    for harness in created:
        harness.context.teardown()


@pytest.fixture
def harness(make_harness) -> PortalHarness:
    return make_harness()
