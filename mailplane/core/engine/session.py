"""
Session runner — lock, precheck, execute, audit.

Flow:
    hold lock → precheck (inside the lock) → phases → audit entry → release

The precheck runs inside the lock so two requests can never both pass
the idempotency guard and then both mutate the host.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from mailplane.core.engine.lock import LockManager
from mailplane.core.engine.phases import ExecutionReport, PhaseExecutor
from mailplane.core.models.provisioning import ProvisioningSession, SessionState
from mailplane.core.persistence.audit import AuditEntry, AuditWriter

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    session: ProvisioningSession
    report: ExecutionReport

    @property
    def ok(self) -> bool:
        return self.report.ok

    def raise_for_failure(self) -> None:
        """Re-raise the phase error of a failed session."""
        if self.report.error is not None:
            raise self.report.error


class SessionRunner:
    """Drives one ProvisioningSession end to end."""

    def __init__(self, locks: LockManager, audit: AuditWriter | None = None):
        self._locks = locks
        self._audit = audit

    def run(
        self,
        session: ProvisioningSession,
        *,
        precheck: Callable[[], None] | None = None,
    ) -> SessionResult:
        """Run a session under its lock.

        Raises:
            LockHeldError: Another session of this kind is in progress.
            Whatever ``precheck`` raises (e.g. AlreadyConfiguredError).
        """
        with self._locks.hold(session.lock_name):
            if precheck is not None:
                precheck()

            session.state = SessionState.RUNNING
            logger.info("Session %s (%s) started: %s", session.id, session.kind.value, session.target)

            report = PhaseExecutor(session.kind.value).run(session.phases)
            session.outcomes = report.outcomes
            session.state = SessionState(report.status)

            if report.ok:
                logger.info("Session %s completed (%d phases)", session.id, report.total)
            else:
                logger.error(
                    "Session %s %s at %r: %s",
                    session.id, session.state.value, report.failed_phase, report.error.message,
                )
            self._record(session, report)

        return SessionResult(session=session, report=report)

    def _record(self, session: ProvisioningSession, report: ExecutionReport) -> None:
        if self._audit is None:
            return
        entry = AuditEntry(
            session_id=session.id,
            kind=session.kind.value,
            target=dict(session.target),
            status=session.state.value,
            phases_total=report.total,
            phases_succeeded=report.succeeded,
            phases_skipped=report.skipped,
            failed_phase=report.failed_phase,
            rolled_back=list(report.rolled_back),
            duration_ms=report.duration_ms,
            errors=[report.error.message, *report.rollback_errors] if report.error else [],
            warnings=list(report.warnings),
        )
        self._audit.write(entry)
