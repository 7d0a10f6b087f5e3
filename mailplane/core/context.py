"""
Provisioning context — everything a session needs, wired once.

Entry points build one context at startup and hand it to every use case:

    - Web server:   server.py → build_context(settings)
    - CLI:          main.py   → build_context(settings)
    - Tests:        conftest  → build_context(settings, runner=MockRunner())
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from mailplane.adapters.base import CommandRunner
from mailplane.adapters.shell.command import SubprocessRunner
from mailplane.core.config.settings import Settings
from mailplane.core.engine.lock import LockManager
from mailplane.core.engine.session import SessionRunner
from mailplane.core.persistence.audit import AuditWriter
from mailplane.core.services.config_writer import ConfigWriter
from mailplane.core.services.conflicts import ConflictResolver
from mailplane.core.services.idempotency import IdempotencyGuard
from mailplane.core.services.probe import SystemProbe
from mailplane.core.services.systemd import ServiceManager


@dataclass
class ProvisioningContext:
    settings: Settings
    runner: CommandRunner
    probe: SystemProbe
    services: ServiceManager
    writer: ConfigWriter
    guard: IdempotencyGuard
    conflicts: ConflictResolver
    locks: LockManager
    audit: AuditWriter
    sessions: SessionRunner


def build_context(settings: Settings, runner: CommandRunner | None = None) -> ProvisioningContext:
    if runner is None:
        runner = SubprocessRunner(sudo_path=settings.binaries.sudo)
    probe = SystemProbe(runner, settings)
    services = probe.services
    locks = LockManager(settings.lock_dir, stale_after=settings.stale_lock_seconds)
    audit = AuditWriter(state_dir=Path(settings.state_dir))
    return ProvisioningContext(
        settings=settings,
        runner=runner,
        probe=probe,
        services=services,
        writer=ConfigWriter(runner, settings),
        guard=IdempotencyGuard(probe),
        conflicts=ConflictResolver(services),
        locks=locks,
        audit=audit,
        sessions=SessionRunner(locks, audit),
    )
