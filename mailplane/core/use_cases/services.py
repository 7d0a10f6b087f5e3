"""
Services — enable, inspect and control allow-listed services.

Each requested service gets its own sub-chain:

    resolve conflicts → enable unit → start (or restart) unit

A service that fails has its own sub-chain unwound and is reported with
an error; the remaining services still run. A service that is already
enabled and active is left alone.

Status and single start/stop/restart actions also live here; they are
one systemctl call each and take no lock.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from mailplane.core.context import ProvisioningContext
from mailplane.core.engine.phases import chain
from mailplane.core.errors import InvalidInputError, PhaseError
from mailplane.core.models.provisioning import (
    Phase,
    ProvisioningSession,
    ServiceDescriptor,
    SessionKind,
)
from mailplane.core.services import catalog
from mailplane.core.services.validation import validate_service_name
from mailplane.core.use_cases.common import require_ok

logger = logging.getLogger(__name__)

LOCK_NAME = "service-enable"


@dataclass
class ServiceOutcome:
    name: str
    enabled: bool = False
    started: bool = False
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "enabled": self.enabled,
            "started": self.started,
        }
        if self.error:
            data["error"] = self.error
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data


@dataclass
class ServiceEnableResult:
    results: list[ServiceOutcome] = field(default_factory=list)
    session_id: str = ""

    @property
    def all_ok(self) -> bool:
        return all(r.error is None for r in self.results)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "allOk": self.all_ok,
        }


def parse_service_request(services: object) -> list[tuple[str, bool]]:
    """Validate a ``{name: bool}`` mapping, preserving request order.

    Raises:
        InvalidInputError: Not a non-empty mapping, unknown or malformed
            name, or a non-boolean value.
    """
    if not isinstance(services, dict) or not services:
        raise InvalidInputError("Request must include a non-empty 'services' mapping")

    requested: list[tuple[str, bool]] = []
    for name, wanted in services.items():
        validate_service_name(name, catalog.SERVICE_NAMES)
        if not isinstance(wanted, bool):
            raise InvalidInputError(f"Value for {name} must be true or false")
        requested.append((name, wanted))
    return requested


def _service_chain(
    ctx: ProvisioningContext,
    descriptor: ServiceDescriptor,
    outcome: ServiceOutcome,
) -> Phase:
    unit = descriptor.unit
    before: dict[str, bool] = {}

    def needs_work() -> bool:
        before["enabled"] = ctx.services.is_enabled(unit)
        before["active"] = ctx.services.is_active(unit)
        done = before["enabled"] and before["active"] and not descriptor.needs_restart_not_start
        if done:
            logger.info("%s already enabled and running", descriptor.name)
            outcome.enabled = outcome.started = True
        return not done

    def resolve() -> str:
        outcome.warnings.extend(ctx.conflicts.resolve_conflicts(descriptor))
        return "; ".join(outcome.warnings)

    def enable() -> str:
        if before.get("enabled"):
            outcome.enabled = True
            return f"{unit} already enabled"
        require_ok(ctx.services.enable(unit), f"Failed to enable {descriptor.name}")
        outcome.enabled = True
        return f"enabled {unit}"

    def undo_enable() -> None:
        if before.get("enabled"):
            return
        require_ok(ctx.services.disable(unit), f"Failed to disable {descriptor.name}")
        outcome.enabled = False

    def start() -> str:
        if descriptor.needs_restart_not_start:
            require_ok(ctx.services.restart(unit), f"Failed to restart {descriptor.name}")
            verb = "restarted"
        elif before.get("active"):
            verb = "already running"
        else:
            require_ok(ctx.services.start(unit), f"Failed to start {descriptor.name}")
            verb = "started"
        outcome.started = True
        return f"{unit} {verb}"

    def undo_start() -> None:
        if before.get("active"):
            return
        require_ok(ctx.services.stop(unit), f"Failed to stop {descriptor.name}")
        outcome.started = False

    verb = "restart" if descriptor.needs_restart_not_start else "start"
    steps = [
        Phase(f"resolve conflicts for {descriptor.name}", resolve),
        Phase(f"enable {unit}", enable, rollback=undo_enable),
        Phase(f"{verb} {unit}", start, rollback=undo_start),
    ]
    service_phase = chain(f"enable {descriptor.name}", steps, when=needs_work, label=f"service/{descriptor.name}")
    service_phase.fatal = False
    return service_phase


def enable_services(ctx: ProvisioningContext, services: object) -> ServiceEnableResult:
    """Enable and start every service mapped to ``true``.

    Raises:
        InvalidInputError: Any name or value is invalid (nothing ran).
        LockHeldError: Another service-enable session is in progress.
    """
    requested = parse_service_request(services)

    result = ServiceEnableResult()
    phases: list[Phase] = []
    outcomes: dict[str, ServiceOutcome] = {}
    for name, wanted in requested:
        outcome = ServiceOutcome(name=name)
        result.results.append(outcome)
        if wanted:
            outcomes[f"enable {name}"] = outcome
            phases.append(_service_chain(ctx, catalog.SERVICES[name], outcome))

    session = ProvisioningSession(
        kind=SessionKind.SERVICE_ENABLE,
        lock_name=LOCK_NAME,
        target={"services": ",".join(name for name, wanted in requested if wanted)},
        phases=phases,
    )
    result.session_id = session.id

    outcome_report = ctx.sessions.run(session)
    for phase_outcome in outcome_report.report.outcomes:
        if phase_outcome.status == "warning":
            outcomes[phase_outcome.name].error = phase_outcome.error
    # Phases are non-fatal; anything left in the report is unexpected
    outcome_report.raise_for_failure()
    return result


# ── Status & Control ─────────────────────────────────────────────────

ACTIONS = ("start", "stop", "restart")

_SHOW_PROPERTIES = ["ActiveEnterTimestamp", "MainPID", "MemoryCurrent"]

# systemd reports an unset MemoryCurrent as 2**64 - 1
_MEMORY_CEILING = 10**15

_STATUS_BY_STATE = {
    "active": "running",
    "activating": "running",
    "inactive": "stopped",
    "deactivating": "stopped",
    "failed": "failed",
}


def format_uptime(seconds: int) -> str:
    """``2d 3h 4m``, ``3h 4m`` or ``4m``."""
    days, rest = divmod(max(seconds, 0), 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days:
        return f"{days}d {hours}h {minutes}m"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def _int_or_none(value: str | None) -> int | None:
    if value is None or not value.isdigit():
        return None
    return int(value)


@dataclass
class ServiceStatus:
    name: str
    status: str = "unknown"
    pid: int | None = None
    uptime_seconds: int | None = None
    memory_bytes: int | None = None

    @property
    def uptime_formatted(self) -> str | None:
        if self.uptime_seconds is None:
            return None
        return format_uptime(self.uptime_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "pid": self.pid,
            "uptimeSeconds": self.uptime_seconds,
            "uptimeFormatted": self.uptime_formatted,
            "memoryBytes": self.memory_bytes,
        }


def service_status(
    ctx: ProvisioningContext,
    descriptor: ServiceDescriptor,
    *,
    now: Callable[[], float] = time.time,
) -> ServiceStatus:
    """Status of one unit; runtime details only while it runs."""
    state = ctx.services.active_state(descriptor.unit)
    status = ServiceStatus(name=descriptor.name, status=_STATUS_BY_STATE.get(state, "unknown"))
    if status.status != "running":
        return status

    props = ctx.services.show(descriptor.unit, _SHOW_PROPERTIES)
    started = props.get("ActiveEnterTimestamp", "")
    since = _int_or_none(started.lstrip("@")) if started.startswith("@") else None
    if since is not None:
        status.uptime_seconds = max(int(now()) - since, 0)
    pid = _int_or_none(props.get("MainPID"))
    status.pid = pid or None
    memory = _int_or_none(props.get("MemoryCurrent"))
    if memory is not None and memory < _MEMORY_CEILING:
        status.memory_bytes = memory
    return status


def service_statuses(
    ctx: ProvisioningContext,
    *,
    now: Callable[[], float] = time.time,
) -> list[ServiceStatus]:
    """Status of every catalog service, in catalog order."""
    return [service_status(ctx, d, now=now) for d in catalog.SERVICES.values()]


@dataclass
class ServiceActionResult:
    name: str
    action: str
    status: str

    @property
    def message(self) -> str:
        return f"Service {self.action} completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "action": self.action,
            "message": self.message,
            "status": self.status,
        }


def service_action(ctx: ProvisioningContext, name: object, action: object) -> ServiceActionResult:
    """Start, stop or restart one catalog service.

    Raises:
        InvalidInputError: Unknown service or action (nothing ran).
        PhaseError: systemctl refused the change.
    """
    descriptor = catalog.SERVICES[validate_service_name(name, catalog.SERVICE_NAMES)]
    if not isinstance(action, str) or action not in ACTIONS:
        raise InvalidInputError(f"Invalid action: {action!r} (expected one of {', '.join(ACTIONS)})")

    logger.info("%s %s requested", action, descriptor.unit)
    result = getattr(ctx.services, action)(descriptor.unit)
    if result.failed:
        raise PhaseError.from_result(
            f"Failed to {action} service {descriptor.name}", result, phase=f"{action} {descriptor.unit}",
        )

    state = ctx.services.active_state(descriptor.unit)
    return ServiceActionResult(
        name=descriptor.name,
        action=action,
        status=_STATUS_BY_STATE.get(state, "unknown"),
    )
