"""
Tests for the audit ledger and the session runner that feeds it.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from mailplane.core.engine.lock import LockManager
from mailplane.core.engine.session import SessionRunner
from mailplane.core.errors import AlreadyConfiguredError, LockHeldError, PhaseError
from mailplane.core.models.provisioning import (
    Phase,
    ProvisioningSession,
    SessionKind,
    SessionState,
)
from mailplane.core.persistence.audit import DEFAULT_AUDIT_FILE, AuditEntry, AuditWriter

# ── Audit Ledger ─────────────────────────────────────────────────────


class TestAuditWriter:
    def test_append_and_read(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        writer.write(AuditEntry(session_id="ps-1", kind="webmail_setup", status="completed"))
        writer.write(AuditEntry(session_id="ps-2", kind="dns_forward", status="rolled_back"))

        entries = writer.read_all()

        assert writer.path == tmp_path / DEFAULT_AUDIT_FILE
        assert [e.session_id for e in entries] == ["ps-1", "ps-2"]
        assert writer.entry_count() == 2
        assert [e.session_id for e in writer.read_recent(1)] == ["ps-2"]

    def test_one_line_per_entry(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        for i in range(3):
            writer.write(AuditEntry(session_id=f"ps-{i}"))
        assert len(writer.path.read_text().splitlines()) == 3

    def test_corrupt_line_skipped(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        writer.write(AuditEntry(session_id="ps-1"))
        with writer.path.open("a") as f:
            f.write("{not json\n")
        writer.write(AuditEntry(session_id="ps-2"))

        assert [e.session_id for e in writer.read_all()] == ["ps-1", "ps-2"]

    def test_recent_by_kind(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path)
        for kind in ("dns_forward", "webmail_setup", "dns_forward"):
            writer.write(AuditEntry(session_id=f"ps-{kind}", kind=kind))

        assert [e.kind for e in writer.read_recent(5, kind="dns_forward")] == ["dns_forward", "dns_forward"]
        assert writer.read_recent(0) == []

    def test_summary_names_failed_phase(self):
        entry = AuditEntry(session_id="ps-1", kind="webmail_setup", status="rolled_back", failed_phase="test nginx config")
        assert "ps-1" in entry.summary()
        assert "'test nginx config'" in entry.summary()

    def test_missing_file(self, tmp_path: Path):
        writer = AuditWriter(state_dir=tmp_path / "none")
        assert writer.read_all() == []
        assert writer.entry_count() == 0

    def test_write_failure_never_raises(self, tmp_path: Path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        AuditWriter(path=blocker / "sub" / "audit.ndjson").write(AuditEntry())


# ── Session Runner ───────────────────────────────────────────────────


def _session(phases: list[Phase]) -> ProvisioningSession:
    return ProvisioningSession(
        kind=SessionKind.SERVICE_ENABLE,
        lock_name="service-enable",
        target={"services": "postfix"},
        phases=phases,
    )


class TestSessionRunner:
    def test_completed(self, tmp_path: Path):
        audit = AuditWriter(state_dir=tmp_path)
        runner = SessionRunner(LockManager(tmp_path / "locks"), audit)
        session = _session([Phase("a", lambda: "ok")])

        result = runner.run(session)

        assert result.ok
        assert session.state is SessionState.COMPLETED
        entry = audit.read_all()[0]
        assert entry.session_id == session.id
        assert entry.status == "completed"
        assert entry.phases_total == 1

    def test_rolled_back(self, tmp_path: Path):
        undone: list[str] = []

        def boom() -> str:
            raise PhaseError("boom")

        audit = AuditWriter(state_dir=tmp_path)
        runner = SessionRunner(LockManager(tmp_path / "locks"), audit)
        session = _session([Phase("a", lambda: "ok", rollback=lambda: undone.append("a")), Phase("b", boom)])

        result = runner.run(session)

        assert session.state is SessionState.ROLLED_BACK
        assert undone == ["a"]
        with pytest.raises(PhaseError):
            result.raise_for_failure()
        entry = audit.read_all()[0]
        assert entry.failed_phase == "b"
        assert entry.errors == ["boom"]

    def test_precheck_runs_inside_lock(self, tmp_path: Path):
        locks = LockManager(tmp_path / "locks")
        seen: list[bool] = []

        def precheck() -> None:
            seen.append(locks.inspect("service-enable") is not None)

        SessionRunner(locks).run(_session([]), precheck=precheck)

        assert seen == [True]
        assert locks.inspect("service-enable") is None

    def test_precheck_rejection_releases_lock(self, tmp_path: Path):
        locks = LockManager(tmp_path / "locks")
        ran: list[str] = []

        def precheck() -> None:
            raise AlreadyConfiguredError("done")

        with pytest.raises(AlreadyConfiguredError):
            SessionRunner(locks).run(_session([Phase("a", lambda: ran.append("a"))]), precheck=precheck)

        assert ran == []
        assert locks.inspect("service-enable") is None

    def test_lock_held(self, tmp_path: Path):
        locks = LockManager(tmp_path / "locks")
        locks.acquire("service-enable")
        ran: list[str] = []

        with pytest.raises(LockHeldError):
            SessionRunner(locks).run(_session([Phase("a", lambda: ran.append("a"))]))

        assert ran == []
