"""
Logging setup for the CLI and the dashboard server.

main.py calls ``setup_logging_from_env`` once; every module logs through
``logging.getLogger(__name__)`` and picks the handlers up from the root.

Console level:  --log-level / --debug  >  MAILPLANE_LOG_LEVEL  >  WARNING
File output:    MAILPLANE_LOG_FILE, at MAILPLANE_LOG_FILE_LEVEL (defaults
                to the console level)

Session ids (``ps-…``) appear in the messages themselves, so a single
grep over the file follows one provisioning run end to end.
"""

from __future__ import annotations

import logging
import os
import sys

LEVEL_ENV_VAR = "MAILPLANE_LOG_LEVEL"
FILE_ENV_VAR = "MAILPLANE_LOG_FILE"
FILE_LEVEL_ENV_VAR = "MAILPLANE_LOG_FILE_LEVEL"

# ── Formats ─────────────────────────────────────────────────────

# (threshold, format, datefmt): first entry whose threshold >= level wins
_CONSOLE_FORMATS: tuple[tuple[int, str, str | None], ...] = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_DEFAULT = "%(levelname)s: %(message)s"

_FILE_FORMAT = "%(asctime)s %(process)d %(levelname)-5s %(name)s  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Per-request lines from the dev server
_NOISY_LOGGERS = ("werkzeug",)


def _console_formatter(level: int) -> logging.Formatter:
    for threshold, fmt, datefmt in _CONSOLE_FORMATS:
        if level <= threshold:
            return logging.Formatter(fmt, datefmt=datefmt)
    return logging.Formatter(_CONSOLE_DEFAULT)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root handlers with a stderr handler and, optionally, a file.

    Args:
        level: Console level name. Unknown names fall back to WARNING.
        log_file: Append log records to this path as well.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Pin ``werkzeug`` at WARNING unless ``level``
            is DEBUG.
    """
    console_level = _parse_level(level)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(_console_formatter(console_level))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root_level = console_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else console_level
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setLevel(file_level)
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(handler)
        root_level = min(root_level, file_level)

    root.setLevel(root_level)

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A broken stderr must never take a provisioning session down with it
    logging.raiseExceptions = False


def setup_logging_from_env(level: str | None = None, quiet_third_party: bool = True) -> None:
    """Run ``setup_logging`` with the MAILPLANE_LOG_* variables filled in.

    ``level`` comes from a CLI flag and beats the environment.
    """
    env = os.environ
    setup_logging(
        level=level or env.get(LEVEL_ENV_VAR, "WARNING"),
        log_file=env.get(FILE_ENV_VAR) or None,
        log_file_level=env.get(FILE_LEVEL_ENV_VAR) or None,
        quiet_third_party=quiet_third_party,
    )


def _parse_level(level: str | None) -> int:
    numeric = logging.getLevelName(level.strip().upper()) if level else None
    return numeric if isinstance(numeric, int) else logging.WARNING
