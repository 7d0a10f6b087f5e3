"""
Config writer — render templates and place them on disk with sudo.

Only paths in a closed allow-list may be written, removed or linked,
and the check is an exact string match: no prefix matching, no
normalization. A path that is not listed is refused before any
privileged command runs.

Write flow:
    tee <path>.mailplane-new (content on stdin) → mv -f onto <path> → chmod → chown

Every step is verified; the first failure raises ConfigWriteError.
"""

from __future__ import annotations

import logging

from jinja2 import Environment, PackageLoader, StrictUndefined

from mailplane.adapters.base import CommandRunner
from mailplane.core.config.settings import Settings
from mailplane.core.errors import ConfigWriteError, InvalidInputError
from mailplane.core.models.provisioning import ConfigArtifact
from mailplane.core.services import paths

logger = logging.getLogger(__name__)

ALLOWED_WRITE_PATHS: frozenset[str] = frozenset({
    paths.ROUNDCUBE_CONFIG,
    paths.NGINX_SNIPPET,
    paths.NGINX_SITE,
    paths.APACHE_CONF,
    paths.UNBOUND_FORWARD_CONF,
    paths.RESOLVED_DROPIN,
    paths.RESOLV_CONF,
})

ALLOWED_LINK_PATHS: frozenset[str] = frozenset({
    paths.NGINX_SITE_ENABLED,
})

STAGING_SUFFIX = ".mailplane-new"

_env: Environment | None = None


def _environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=PackageLoader("mailplane", "templates"),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            autoescape=False,
        )
    return _env


def render(template: str, **context: object) -> str:
    """Render a packaged template. Missing variables are an error."""
    return _environment().get_template(template).render(**context)


def check_write_path(path: object) -> str:
    if not isinstance(path, str) or path not in ALLOWED_WRITE_PATHS:
        raise InvalidInputError(f"Path is not allowed for writing: {path!r}")
    return path


def check_link_path(path: object) -> str:
    if not isinstance(path, str) or path not in ALLOWED_LINK_PATHS:
        raise InvalidInputError(f"Path is not allowed for linking: {path!r}")
    return path


class ConfigWriter:
    def __init__(self, runner: CommandRunner, settings: Settings):
        self._runner = runner
        self._bin = settings.binaries
        self._timeout = settings.timeouts.write

    def _sudo(self, path: str, args: list[str], stdin: str | None = None):
        return self._runner.run_privileged(path, args, timeout=self._timeout, stdin=stdin)

    def write(self, artifact: ConfigArtifact) -> str:
        """Write ``artifact`` atomically and apply mode and owner.

        Returns:
            The path written, for phase output.

        Raises:
            InvalidInputError: Path not in the allow-list (nothing ran).
            ConfigWriteError: Any privileged step failed.
        """
        path = check_write_path(artifact.path)
        staging = path + STAGING_SUFFIX

        result = self._sudo(self._bin.tee, [staging], stdin=artifact.content)
        if result.failed:
            raise ConfigWriteError.from_result(f"Failed to write {path}", result)

        result = self._sudo(self._bin.mv, ["-f", staging, path])
        if result.failed:
            self._sudo(self._bin.rm, ["-f", staging])
            raise ConfigWriteError.from_result(f"Failed to move {path} into place", result)

        if artifact.mode is not None:
            result = self._sudo(self._bin.chmod, [format(artifact.mode, "04o"), path])
            if result.failed:
                raise ConfigWriteError.from_result(f"Failed to set mode on {path}", result)

        if artifact.owner is not None:
            result = self._sudo(self._bin.chown, [artifact.owner, path])
            if result.failed:
                raise ConfigWriteError.from_result(f"Failed to set owner on {path}", result)

        logger.info("Wrote %s (%d bytes)", path, len(artifact.content))
        return path

    def remove(self, path: str) -> None:
        """Delete an allow-listed file or link. A missing file is fine."""
        if path not in ALLOWED_WRITE_PATHS:
            check_link_path(path)
        result = self._sudo(self._bin.rm, ["-f", path])
        if result.failed:
            raise ConfigWriteError.from_result(f"Failed to remove {path}", result)
        logger.info("Removed %s", path)

    def link(self, source: str, link_path: str) -> None:
        """Point ``link_path`` at ``source``, replacing any existing link."""
        check_write_path(source)
        check_link_path(link_path)
        result = self._sudo(self._bin.ln, ["-sfn", source, link_path])
        if result.failed:
            raise ConfigWriteError.from_result(f"Failed to link {link_path}", result)
        logger.info("Linked %s -> %s", link_path, source)
