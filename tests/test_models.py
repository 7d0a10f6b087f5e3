"""
Tests for provisioning models — validation and small helpers.
"""

import pytest
from pydantic import ValidationError

from mailplane.core.models.provisioning import (
    CommandResult,
    ConfigArtifact,
    LockRecord,
    ProvisioningSession,
    SessionKind,
    SessionState,
)


class TestCommandResult:
    """CommandResult model tests."""

    def test_ok(self):
        assert CommandResult(exit_code=0).ok

    def test_timeout_is_failure(self):
        """A timeout is a failure even with a zero exit code."""
        r = CommandResult(exit_code=0, timed_out=True)
        assert not r.ok
        assert r.failed

    def test_stderr_tail_falls_back_to_stdout(self):
        r = CommandResult(exit_code=1, stdout="only stdout\n")
        assert r.stderr_tail() == "only stdout"

    def test_stderr_tail_limit(self):
        r = CommandResult(exit_code=1, stderr="x" * 600 + "end")
        assert r.stderr_tail(10) == "xxxxxxxend"

    def test_frozen(self):
        r = CommandResult(exit_code=0)
        with pytest.raises(ValidationError):
            r.exit_code = 1


class TestConfigArtifact:
    def test_valid(self):
        a = ConfigArtifact(path="/etc/x", content="", mode=0o640, owner="root:www-data")
        assert a.mode == 0o640

    def test_bad_owner(self):
        with pytest.raises(ValidationError):
            ConfigArtifact(path="/etc/x", content="", owner="root")

    def test_bad_mode(self):
        with pytest.raises(ValidationError):
            ConfigArtifact(path="/etc/x", content="", mode=0o17777)


class TestLockRecord:
    def test_age(self):
        rec = LockRecord(path="/run/x", acquired_at_ms=1_000)
        assert rec.age_seconds(3_500) == 2.5

    def test_age_never_negative(self):
        """A clock that went backwards reads as age zero."""
        rec = LockRecord(path="/run/x", acquired_at_ms=5_000)
        assert rec.age_seconds(1_000) == 0


class TestProvisioningSession:
    def test_defaults(self):
        s = ProvisioningSession(kind=SessionKind.DNS_FORWARD, lock_name="dns-forward")
        assert s.state is SessionState.PENDING
        assert s.id.startswith("ps-")

    def test_ids_unique(self):
        a = ProvisioningSession(kind=SessionKind.DNS_FORWARD, lock_name="dns-forward")
        b = ProvisioningSession(kind=SessionKind.DNS_FORWARD, lock_name="dns-forward")
        assert a.id != b.id
