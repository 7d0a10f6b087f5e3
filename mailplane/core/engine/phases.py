"""
Phase executor — runs an ordered phase list with reverse-order rollback.

Flow:
    for each phase: when? → run → record
    on fatal failure: rollback(failed) → rollback(completed, reversed) → stop

Phases run strictly one after another. A phase that raises
``PhaseError`` (or anything else, which gets wrapped) stops the chain;
its own rollback runs first since a failing phase may have partially
applied, then every completed phase's rollback in reverse order.
Rollback errors are logged and recorded, and unwinding continues.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from mailplane.core.errors import PhaseError
from mailplane.core.models.provisioning import Phase, PhaseOutcome

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Result of executing a phase list."""

    label: str = ""
    outcomes: list[PhaseOutcome] = field(default_factory=list)
    failed_index: int | None = None
    failed_phase: str = ""
    error: PhaseError | None = None
    rolled_back: list[str] = field(default_factory=list)
    rollback_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "ok")

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "skipped")

    @property
    def status(self) -> str:
        if self.ok:
            return "completed"
        if self.rollback_errors:
            return "failed"
        return "rolled_back"

    def to_dict(self) -> dict:
        data = {
            "label": self.label,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "phases": [o.model_dump(mode="json") for o in self.outcomes],
            "rolled_back": list(self.rolled_back),
            "warnings": list(self.warnings),
            "duration_ms": self.duration_ms,
        }
        if self.error is not None:
            data["failed_phase"] = self.failed_phase
            data["error"] = self.error.message
            data["rollback_errors"] = list(self.rollback_errors)
        return data


def _as_phase_error(phase: Phase, exc: Exception) -> PhaseError:
    if isinstance(exc, PhaseError):
        err = exc
    else:
        logger.exception("Unexpected error in phase %r", phase.name)
        err = PhaseError(f"Unexpected error in {phase.name}: {exc}")
    if not err.phase:
        err.phase = phase.name
    return err


class PhaseExecutor:
    """Sequential executor for one rollback scope."""

    def __init__(self, label: str = ""):
        self.label = label

    def run(self, phases: list[Phase]) -> ExecutionReport:
        report = ExecutionReport(label=self.label)
        completed: list[tuple[Phase, PhaseOutcome]] = []
        start = time.monotonic()

        for index, phase in enumerate(phases):
            outcome = PhaseOutcome(name=phase.name)
            report.outcomes.append(outcome)
            phase_start = time.monotonic()

            try:
                if phase.when is not None and not phase.when():
                    outcome.status = "skipped"
                    logger.debug("[%s] skip %s", self.label, phase.name)
                    continue
                logger.info("[%s] %s", self.label, phase.name)
                outcome.output = phase.run() or ""
            except Exception as exc:
                err = _as_phase_error(phase, exc)
                outcome.duration_ms = int((time.monotonic() - phase_start) * 1000)
                outcome.error = err.message

                if not phase.fatal:
                    outcome.status = "warning"
                    report.warnings.append(f"{phase.name}: {err.message}")
                    logger.warning("[%s] %s failed (non-fatal): %s", self.label, phase.name, err.message)
                    continue

                outcome.status = "failed"
                report.failed_index = index
                report.failed_phase = err.phase
                report.error = err
                report.rolled_back.extend(err.rolled_back)
                report.rollback_errors.extend(err.rollback_errors)
                logger.error("[%s] %s failed: %s", self.label, phase.name, err.message)

                self._rollback(phase, outcome, report)
                for done, done_outcome in reversed(completed):
                    self._rollback(done, done_outcome, report)
                break

            outcome.duration_ms = int((time.monotonic() - phase_start) * 1000)
            completed.append((phase, outcome))

        report.duration_ms = int((time.monotonic() - start) * 1000)
        return report

    def _rollback(self, phase: Phase, outcome: PhaseOutcome, report: ExecutionReport) -> None:
        if phase.rollback is None:
            return
        try:
            phase.rollback()
        except Exception as exc:
            msg = exc.message if isinstance(exc, PhaseError) else str(exc)
            logger.warning("[%s] rollback of %s failed: %s", self.label, phase.name, msg)
            report.rollback_errors.append(f"{phase.name}: {msg}")
            return
        outcome.rolled_back = True
        report.rolled_back.append(phase.name)
        logger.info("[%s] rolled back %s", self.label, phase.name)


def chain(
    name: str,
    phases: list[Phase],
    *,
    when: Callable[[], bool] | None = None,
    label: str | None = None,
) -> Phase:
    """Wrap a phase list as a single phase with its own rollback scope.

    When an inner phase fails the inner scope is unwound before the
    error propagates, and the error keeps the inner phase's name. The
    returned phase has no rollback of its own.
    """

    def _run() -> str:
        report = PhaseExecutor(label or name).run(phases)
        if report.error is not None:
            err = report.error
            err.rolled_back = list(report.rolled_back)
            err.rollback_errors = list(report.rollback_errors)
            raise err
        return f"{report.succeeded}/{report.total} steps"

    return Phase(name=name, run=_run, when=when)
