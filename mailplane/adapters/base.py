"""
Command runner base — the contract between engine and host.

Every external program the engine starts goes through this interface.
Paths are absolute, arguments are lists, secrets travel on stdin or
in the environment and never in argv.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from mailplane.core.models.provisioning import CommandResult

DEFAULT_SUDO = "/usr/bin/sudo"


class CommandRunner(ABC):
    """Abstract base class for command runners.

    Runners execute a program and return a CommandResult.
    They NEVER raise for a non-zero exit or a timeout; both are
    captured in the result. The only exception a runner raises is
    ``InvalidInputError`` for a non-absolute program path.
    """

    sudo_path: str = DEFAULT_SUDO

    @abstractmethod
    def run(
        self,
        path: str,
        args: list[str],
        *,
        timeout: float,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run ``path`` with ``args`` and wait at most ``timeout`` seconds."""

    def run_privileged(
        self,
        path: str,
        args: list[str],
        *,
        timeout: float,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run through non-interactive sudo.

        ``sudo -n`` fails immediately instead of prompting when the
        policy does not allow the command.
        """
        return self.run(
            self.sudo_path,
            ["-n", path, *args],
            timeout=timeout,
            stdin=stdin,
            env=env,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} sudo={self.sudo_path!r}>"
