"""
Phase building blocks shared by the provisioning sessions.
"""

from __future__ import annotations

import logging
from typing import Callable

from mailplane.core.context import ProvisioningContext
from mailplane.core.errors import PhaseError
from mailplane.core.models.provisioning import CommandResult, ConfigArtifact, Phase

logger = logging.getLogger(__name__)


def require_ok(result: CommandResult, message: str) -> CommandResult:
    """Turn a failed command into a PhaseError carrying its stderr."""
    if result.failed:
        raise PhaseError.from_result(message, result)
    return result


def apt_install(ctx: ProvisioningContext, packages: list[str], message: str) -> str:
    result = ctx.runner.run_privileged(
        ctx.settings.binaries.apt_get,
        ["install", "-y", "--no-install-recommends", *packages],
        timeout=ctx.settings.timeouts.package,
        env={"DEBIAN_FRONTEND": "noninteractive"},
    )
    require_ok(result, message)
    return f"installed {' '.join(packages)}"


def write_phase(
    ctx: ProvisioningContext,
    name: str,
    path: str,
    content: Callable[[], str],
    *,
    mode: int | None = None,
    owner: str | None = None,
    when: Callable[[], bool] | None = None,
    undo: bool = True,
) -> Phase:
    """A phase that writes one config file.

    Rollback puts back what was there before: the previous content when
    it was readable, nothing when the file did not exist. With
    ``undo=False`` the file stays in place when a later phase fails.
    """
    before: dict[str, object] = {}

    def run() -> str:
        before["existed"] = ctx.probe.path_exists(path)
        before["content"] = ctx.probe.read_text(path)
        return ctx.writer.write(
            ConfigArtifact(path=path, content=content(), mode=mode, owner=owner)
        )

    def rollback() -> None:
        previous = before.get("content")
        if isinstance(previous, str):
            ctx.writer.write(ConfigArtifact(path=path, content=previous, mode=mode, owner=owner))
        elif not before.get("existed"):
            ctx.writer.remove(path)
        else:
            logger.warning("Cannot restore %s: previous content was unreadable", path)

    return Phase(name=name, run=run, rollback=rollback if undo else None, when=when)


def unit_phase(
    ctx: ProvisioningContext,
    name: str,
    verb: str,
    unit: str,
    *,
    when: Callable[[], bool] | None = None,
    fatal: bool = True,
) -> Phase:
    """A phase that runs one systemctl verb and has no rollback."""

    def run() -> str:
        result = getattr(ctx.services, verb)(unit)
        require_ok(result, f"Failed to {verb} {unit}")
        return f"{verb} {unit}"

    return Phase(name=name, run=run, when=when, fatal=fatal)
