"""
Tests for Role Resolution
=========================

Effective role computation, the SUDO persistence guard and sanitization.
"""

import pytest

from portal.models.enums import AuditAction, Role
from portal.models.profile import Profile
from portal.services.role_resolver import (
    PersistenceBlockedError,
    is_role_persistable,
    sanitize_for_persistence,
)

PERSISTED = (Role.STAFF, Role.STUDENT, Role.ADMIN)


def _profile(role: Role = Role.STAFF) -> Profile:
    return Profile(id="user-1", id_number="E-1", role=role, name="Ada")


@pytest.fixture
def sudo_harness(make_harness):
    return make_harness(ENABLE_SUDO_ADMIN=True, SUDO_ADMIN_EMAIL="root@x.edu")


class TestSanitizeForPersistence:
    def test_sudo_maps_to_none(self):
        assert sanitize_for_persistence(Role.SUDO) is None
        assert sanitize_for_persistence("SUDO") is None

    @pytest.mark.parametrize("role", PERSISTED)
    def test_persisted_roles_unchanged(self, role):
        assert sanitize_for_persistence(role) == role
        assert sanitize_for_persistence(str(role)) == role

    @pytest.mark.parametrize("value", [None, "", "OWNER", "staff"])
    def test_unrecognised_maps_to_none(self, value):
        assert sanitize_for_persistence(value) is None
        assert not is_role_persistable(value)


class TestAssertNotPersistable:
    def test_sudo_raises_and_audits(self, sudo_harness):
        resolver = sudo_harness.services["role_resolver"]

        with pytest.raises(PersistenceBlockedError) as excinfo:
            resolver.assert_not_persistable(Role.SUDO, "unit_test")

        assert excinfo.value.context == "unit_test"
        rows = sudo_harness.fake.tables["audit_logs"]
        assert [r["action"] for r in rows] == [str(AuditAction.SUDO_PERSISTENCE_BLOCKED)]
        assert '"context": "unit_test"' in rows[0]["details"]

    @pytest.mark.parametrize("role", PERSISTED)
    def test_persisted_roles_are_noops(self, harness, role):
        resolver = harness.services["role_resolver"]

        resolver.assert_not_persistable(role, "unit_test")

        assert harness.fake.audit_actions() == []

    def test_rejection_survives_failing_audit_sink(self, sudo_harness):
        sudo_harness.fake.failures[("audit_logs", "insert")] = ConnectionError("sink down")
        resolver = sudo_harness.services["role_resolver"]

        with pytest.raises(PersistenceBlockedError):
            resolver.assert_not_persistable("SUDO", "unit_test")


class TestEffectiveRole:
    @pytest.mark.parametrize(
        "email",
        ["root@x.edu", "Root@X.EDU ", "  ROOT@x.edu", "root@X.edu\t"],
    )
    def test_override_is_case_and_whitespace_insensitive(self, sudo_harness, email):
        resolver = sudo_harness.services["role_resolver"]
        assert resolver.effective_role(_profile(Role.STUDENT), email) == Role.SUDO

    def test_override_applies_without_profile(self, sudo_harness):
        resolver = sudo_harness.services["role_resolver"]
        assert resolver.effective_role(None, "root@x.edu") == Role.SUDO

    def test_configured_address_is_normalized_too(self, make_harness):
        harness = make_harness(ENABLE_SUDO_ADMIN=True, SUDO_ADMIN_EMAIL="  Root@X.edu ")
        resolver = harness.services["role_resolver"]
        assert resolver.effective_role(_profile(), "root@x.edu") == Role.SUDO

    def test_other_identity_gets_persisted_role(self, sudo_harness):
        resolver = sudo_harness.services["role_resolver"]
        assert resolver.effective_role(_profile(Role.ADMIN), "ada@x.edu") == Role.ADMIN

    def test_no_profile_means_no_role(self, sudo_harness):
        resolver = sudo_harness.services["role_resolver"]
        assert resolver.effective_role(None, "ada@x.edu") is None

    def test_flag_off_disables_override(self, make_harness):
        harness = make_harness(ENABLE_SUDO_ADMIN=False, SUDO_ADMIN_EMAIL="root@x.edu")
        resolver = harness.services["role_resolver"]
        assert resolver.effective_role(_profile(Role.STAFF), "root@x.edu") == Role.STAFF
        assert not resolver.is_sudo_identity("root@x.edu")

    @pytest.mark.parametrize("email", [None, "", "   "])
    def test_empty_email_never_matches(self, sudo_harness, email):
        assert not sudo_harness.services["role_resolver"].is_sudo_identity(email)


class TestProfileModel:
    def test_profile_rejects_sudo(self):
        with pytest.raises(ValueError):
            Profile(id="u", id_number="E-1", role=Role.SUDO, name="Root")
