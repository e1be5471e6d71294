"""
Tests for the Audit Emitter
===========================

Best-effort recording, the admin audit viewer, and the guarantee that a
failing sink never changes the outcome of the audited action.
"""

import json

import pytest
from pydantic import ValidationError

from portal.database import DatabaseManager
from portal.models.enums import AuditAction, Role, SessionState
from portal.repositories.audit_repository import AuditRepository, AuditSinkError
from portal.services.audit_service import AuditService
from portal.utils.audit import build_audit_event


@pytest.fixture
def audit(harness):
    return harness.services["audit_service"]


class TestAuditEvent:
    def test_defaults(self):
        event = build_audit_event("LOGIN")

        assert event.actor_id is None
        assert event.actor_role == "UNKNOWN"
        assert event.details == {}
        assert event.timestamp

    def test_details_json_adds_timestamp(self):
        event = build_audit_event("LOGIN", "u-1", "STAFF", {"email": "a@b.c"})

        payload = json.loads(event.details_json())

        assert payload == {"email": "a@b.c", "logged_at": event.timestamp}

    def test_events_are_immutable(self):
        event = build_audit_event("LOGIN")
        with pytest.raises(ValidationError):
            event.action = "LOGOUT"


class TestRecord:
    def test_record_appends_row(self, harness, audit):
        row_id = audit.record(AuditAction.CREATE_TUTORIAL, {"title": "Intro"})

        rows = harness.fake.tables["audit_logs"]
        assert row_id == rows[0]["id"]
        assert rows[0]["action"] == "CREATE_TUTORIAL"
        assert rows[0]["user_id"] is None
        assert rows[0]["user_role"] == "UNKNOWN"

    def test_record_uses_session_actor(self, harness, audit):
        user = harness.add_account("ada@uni.edu", role=Role.ADMIN)
        harness.sign_in("ada@uni.edu")

        audit.record(AuditAction.UPDATE_USER, {"user_id": "x"})

        row = harness.fake.tables["audit_logs"][-1]
        assert row["user_id"] == user.id
        assert row["user_role"] == "ADMIN"

    def test_explicit_actor_wins(self, harness, audit):
        audit.record("CUSTOM", actor_id="u-9", actor_role="STUDENT")

        row = harness.fake.tables["audit_logs"][0]
        assert (row["user_id"], row["user_role"]) == ("u-9", "STUDENT")

    def test_local_audit_line_is_written(self, audit, log_stream):
        audit.record(AuditAction.LOGIN, {"email": "ada@uni.edu"})

        lines = [json.loads(line) for line in log_stream.getvalue().splitlines()]
        audit_lines = [entry for entry in lines if entry["message"].startswith("AUDIT: ")]
        assert len(audit_lines) == 1
        event = json.loads(audit_lines[0]["message"][len("AUDIT: "):])
        assert event["action"] == "LOGIN"

    @pytest.mark.parametrize(
        "failure", [ConnectionError("sink down"), Exception("rls denied")]
    )
    def test_sink_failure_is_swallowed(self, harness, audit, failure):
        harness.fake.failures[("audit_logs", "insert")] = failure

        assert audit.record(AuditAction.LOGIN) is None

    def test_offline_sink_is_swallowed(self, harness, audit):
        harness.db._supabase = None
        assert audit.record(AuditAction.LOGIN) is None

    def test_repository_raises_sink_error_on_empty_insert(self, harness, logger):
        class _NoRows:
            def table(self, _name):
                return self

            def insert(self, _row):
                return self

            def execute(self):
                return type("Response", (), {"data": []})()

        repo = AuditRepository(
            db=DatabaseManager("", "", logger, client=_NoRows()), logger=logger,
        )
        with pytest.raises(AuditSinkError):
            repo.append(build_audit_event("LOGIN"))


class TestFailingSinkNeverChangesOutcome:
    @pytest.fixture
    def broken(self, harness):
        harness.fake.failures[("audit_logs", "insert")] = ConnectionError("sink down")
        return harness

    def test_sign_in_and_sign_out(self, broken):
        broken.add_account("ada@uni.edu", role=Role.STAFF)

        assert broken.sign_in("ada@uni.edu").success
        assert broken.machine.state == SessionState.AUTHENTICATED
        assert broken.navigator.history == [("/dashboard", False)]

        assert broken.machine.sign_out().success
        assert broken.machine.state == SessionState.ANONYMOUS

    def test_privileged_mutation(self, broken):
        profiles = broken.services["profile_service"]

        result = profiles.create_profile(Role.ADMIN, "new-1", "N-1", "Nia", Role.STAFF)

        assert result.status_code == 201
        assert len(broken.fake.tables["users"]) == 1

    def test_tutorial_write(self, broken):
        tutorials = broken.services["tutorial_service"]
        payload = {"title": "Intro", "video_url": "https://v/1", "target_role": "STAFF"}

        assert tutorials.create_tutorial(Role.ADMIN, payload).status_code == 201


class TestListRecent:
    @pytest.fixture
    def with_rows(self, harness, audit):
        for index in range(5):
            audit.record("EVENT", {"n": index})
        return harness

    @pytest.mark.parametrize("role", [Role.ADMIN, Role.SUDO])
    def test_admins_read_newest_first(self, with_rows, audit, role):
        result = audit.list_recent(role, limit=3)

        assert result.success
        assert [json.loads(e.details)["n"] for e in result.data] == [4, 3, 2]

    def test_default_limit_from_config(self, make_harness):
        harness = make_harness(AUDIT_LOG_LIMIT=2)
        audit = harness.services["audit_service"]
        for _ in range(4):
            audit.record("EVENT")

        assert len(audit.list_recent(Role.ADMIN).data) == 2

    @pytest.mark.parametrize("role", [Role.STAFF, Role.STUDENT, None])
    def test_members_cannot_read(self, with_rows, audit, role):
        assert audit.list_recent(role).status_code == 403

    def test_invalid_limit(self, audit):
        assert audit.list_recent(Role.ADMIN, limit=0).status_code == 400

    def test_backend_error(self, harness, audit):
        harness.fake.failures[("audit_logs", "select")] = Exception("boom")
        assert audit.list_recent(Role.ADMIN).status_code == 500

    def test_offline_backend(self, harness, logger):
        offline = DatabaseManager("", "", logger)
        service = AuditService(
            repo=AuditRepository(db=offline, logger=logger),
            session=harness.context.session,
            logger=logger,
        )

        assert service.list_recent(Role.ADMIN).status_code == 503
