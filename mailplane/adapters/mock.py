"""
Mock runner — universal test double for command execution.

Records every invocation and answers with scripted results, so the
engine can be exercised without touching the host. By default every
command succeeds with empty output.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable

from mailplane.adapters.base import DEFAULT_SUDO, CommandRunner
from mailplane.core.errors import InvalidInputError
from mailplane.core.models.provisioning import CommandResult

Handler = Callable[["MockCall"], "CommandResult | None"]


@dataclass
class MockCall:
    """One recorded invocation.

    ``program`` and ``args`` are the effective command: for a
    privileged call the ``sudo -n`` prefix is stripped and
    ``privileged`` is set instead.
    """

    argv: list[str]
    program: str
    args: list[str]
    privileged: bool = False
    stdin: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    timeout: float = 0.0


class MockRunner(CommandRunner):
    """Scriptable command runner for tests.

    Lookup order for a call: exact argv response, then a handler
    registered for the effective program, then the default success.
    A handler returning None falls through to the default.
    """

    def __init__(self, sudo_path: str = DEFAULT_SUDO, default_output: str = ""):
        self.sudo_path = sudo_path
        self._default_output = default_output
        self._responses: dict[tuple[str, ...], CommandResult] = {}
        self._handlers: dict[str, Handler] = {}
        self._call_log: list[MockCall] = []

    @property
    def call_log(self) -> list[MockCall]:
        """All calls this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_to(self, program: str) -> list[MockCall]:
        """Recorded calls whose effective program is ``program``."""
        return [c for c in self._call_log if c.program == program]

    def set_response(self, argv: list[str], result: CommandResult) -> None:
        """Answer an exact argv (as executed, sudo prefix included)."""
        self._responses[tuple(argv)] = result

    def set_failure(self, argv: list[str], stderr: str = "Mock failure", exit_code: int = 1) -> None:
        self._responses[tuple(argv)] = CommandResult(
            exit_code=exit_code, stderr=stderr, command=list(argv),
        )

    def on(self, program: str, handler: Handler) -> None:
        """Register a handler for every call to ``program``."""
        self._handlers[program] = handler

    def run(
        self,
        path: str,
        args: list[str],
        *,
        timeout: float,
        stdin: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        if not os.path.isabs(path):
            raise InvalidInputError(f"Program path must be absolute: {path!r}")

        argv = [path, *args]
        privileged = path == self.sudo_path and args[:1] == ["-n"] and len(args) > 1
        program, prog_args = (args[1], list(args[2:])) if privileged else (path, list(args))

        call = MockCall(
            argv=argv,
            program=program,
            args=prog_args,
            privileged=privileged,
            stdin=stdin,
            env=dict(env or {}),
            timeout=timeout,
        )
        self._call_log.append(call)

        if tuple(argv) in self._responses:
            return self._responses[tuple(argv)]

        handler = self._handlers.get(program)
        if handler is not None:
            result = handler(call)
            if result is not None:
                return result

        return CommandResult(exit_code=0, stdout=self._default_output, command=argv)

    def reset(self) -> None:
        """Clear call log, responses and handlers."""
        self._call_log.clear()
        self._responses.clear()
        self._handlers.clear()
