"""
Service control — systemctl queries and privileged calls for allow-listed units.

Each method returns the CommandResult as-is; a non-zero exit is a
normal answer (``is-active`` exits 3 for an inactive unit) and never
raises.
"""

from __future__ import annotations

import logging
import re

from mailplane.adapters.base import CommandRunner
from mailplane.core.config.settings import Settings
from mailplane.core.errors import InvalidInputError
from mailplane.core.models.provisioning import CommandResult

logger = logging.getLogger(__name__)

_UNIT_RE = re.compile(r"^[a-zA-Z0-9_.@-]+$")


def validate_unit(unit: str) -> str:
    if not _UNIT_RE.match(unit):
        raise InvalidInputError(f"Invalid unit name: {unit!r}")
    return unit


class ServiceManager:
    """Thin wrapper over ``systemctl``."""

    def __init__(self, runner: CommandRunner, settings: Settings):
        self._runner = runner
        self._systemctl = settings.binaries.systemctl
        self._timeouts = settings.timeouts

    def _query(self, verb: str, unit: str) -> CommandResult:
        return self._runner.run(
            self._systemctl, [verb, validate_unit(unit)],
            timeout=self._timeouts.probe,
        )

    def _change(self, verb: str, unit: str, timeout: float) -> CommandResult:
        result = self._runner.run_privileged(
            self._systemctl, [verb, validate_unit(unit)], timeout=timeout,
        )
        if result.failed:
            logger.warning("systemctl %s %s failed: %s", verb, unit, result.stderr_tail(200))
        return result

    # ── Queries ─────────────────────────────────────────────────

    def is_active(self, unit: str) -> bool:
        return self._query("is-active", unit).ok

    def is_enabled(self, unit: str) -> bool:
        return self._query("is-enabled", unit).ok

    def active_state(self, unit: str) -> str:
        """The ``is-active`` word (active, inactive, failed, ...) or ``unknown``."""
        state = self._query("is-active", unit).stdout.strip()
        return state or "unknown"

    def show(self, unit: str, properties: list[str]) -> dict[str, str]:
        """Read unit properties, timestamps as ``@<epoch seconds>``.

        A failed query yields an empty mapping.
        """
        result = self._runner.run(
            self._systemctl,
            ["show", validate_unit(unit), "--timestamp=unix", f"--property={','.join(properties)}"],
            timeout=self._timeouts.probe,
        )
        if result.failed:
            logger.debug("systemctl show %s failed: %s", unit, result.stderr_tail(200))
            return {}
        values: dict[str, str] = {}
        for line in result.stdout.splitlines():
            key, sep, value = line.partition("=")
            if sep:
                values[key.strip()] = value.strip()
        return values

    # ── Mutations ───────────────────────────────────────────────

    def start(self, unit: str) -> CommandResult:
        return self._change("start", unit, self._timeouts.service)

    def stop(self, unit: str) -> CommandResult:
        return self._change("stop", unit, self._timeouts.service)

    def restart(self, unit: str) -> CommandResult:
        return self._change("restart", unit, self._timeouts.service)

    def reload(self, unit: str) -> CommandResult:
        return self._change("reload", unit, self._timeouts.reload)

    def enable(self, unit: str) -> CommandResult:
        return self._change("enable", unit, self._timeouts.enable)

    def disable(self, unit: str) -> CommandResult:
        return self._change("disable", unit, self._timeouts.enable)
