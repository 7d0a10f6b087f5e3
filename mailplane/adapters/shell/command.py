"""
Subprocess runner — the single place external programs are started.

No shell is involved: argv goes straight to ``subprocess.run`` and the
program path must be absolute, so nothing is resolved through PATH.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time

from mailplane.adapters.base import DEFAULT_SUDO, CommandRunner
from mailplane.core.errors import InvalidInputError
from mailplane.core.models.provisioning import CommandResult

logger = logging.getLogger(__name__)

BASE_ENV = {
    "PATH": "/usr/sbin:/usr/bin:/sbin:/bin",
    "LANG": "C.UTF-8",
}

OUTPUT_TAIL = 4000


def _tail(text: str | bytes | None) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-OUTPUT_TAIL:]


class SubprocessRunner(CommandRunner):
    """Execute programs with ``subprocess.run`` and capture output."""

    def __init__(self, sudo_path: str = DEFAULT_SUDO) -> None:
        if not os.path.isabs(sudo_path):
            raise InvalidInputError(f"sudo path must be absolute: {sudo_path!r}")
        self.sudo_path = sudo_path

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
        run_env = dict(BASE_ENV)
        if env:
            run_env.update(env)

        # stdin and env may carry secrets: only argv is logged
        logger.debug("Executing: %s (timeout=%ss)", argv, timeout)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                argv,
                input=stdin if stdin is not None else "",
                capture_output=True,
                text=True,
                timeout=timeout,
                env=run_env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Timed out after %ss: %s", timeout, path)
            return CommandResult(
                exit_code=-1,
                stdout=_tail(e.stdout),
                stderr=_tail(e.stderr) or f"Command timed out after {timeout}s",
                timed_out=True,
                duration_ms=elapsed_ms,
                command=argv,
            )
        except OSError as e:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            logger.warning("Cannot execute %s: %s", path, e)
            return CommandResult(
                exit_code=127,
                stderr=f"Cannot execute {path}: {e}",
                duration_ms=elapsed_ms,
                command=argv,
            )

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Exit %d in %dms: %s", proc.returncode, elapsed_ms, path)
        return CommandResult(
            exit_code=proc.returncode,
            stdout=_tail(proc.stdout),
            stderr=_tail(proc.stderr),
            duration_ms=elapsed_ms,
            command=argv,
        )
