"""
System probe — read-only questions about the host.

Nothing here mutates anything. Filesystem probes resolve paths under
``settings.system_root`` so the whole layer can be pointed at a scratch
directory.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from mailplane.adapters.base import CommandRunner
from mailplane.core.config.settings import Settings
from mailplane.core.services.systemd import ServiceManager

logger = logging.getLogger(__name__)

INSTALLED_STATUS = "install ok installed"
PHP_VERSION_SNIPPET = "echo PHP_MAJOR_VERSION.'.'.PHP_MINOR_VERSION;"
PHP_RUN_DIR = "/run/php"

_PHP_VERSION_RE = re.compile(r"^\d+\.\d+$")
_FPM_SOCKET_NAME_RE = re.compile(r"^php[\d.]+-fpm\.sock$")
_POSTCONF_KEY_RE = re.compile(r"^[a-z_]+$")


class SystemProbe:
    def __init__(self, runner: CommandRunner, settings: Settings):
        self._runner = runner
        self._settings = settings
        self._root = Path(settings.system_root)
        self.services = ServiceManager(runner, settings)

    # ── Filesystem ──────────────────────────────────────────────

    def host_path(self, path: str) -> Path:
        """Map an absolute host path under the system root."""
        return self._root / path.lstrip("/")

    def path_exists(self, path: str) -> bool:
        # lexists: a sites-enabled symlink counts even if its target is elsewhere
        return os.path.lexists(self.host_path(path))

    def read_text(self, path: str) -> str | None:
        try:
            return self.host_path(path).read_text(encoding="utf-8")
        except OSError:
            return None

    # ── Packages ────────────────────────────────────────────────

    def package_status(self, package: str) -> tuple[bool, str | None]:
        """(installed, version) as reported by dpkg."""
        result = self._runner.run(
            self._settings.binaries.dpkg_query,
            ["-W", "-f=${Status}|${Version}", package],
            timeout=self._settings.timeouts.probe,
        )
        if result.failed:
            return False, None
        status, _, version = result.stdout.strip().partition("|")
        if status.strip() != INSTALLED_STATUS:
            return False, None
        return True, version.strip() or None

    def package_installed(self, package: str) -> bool:
        return self.package_status(package)[0]

    # ── Units ───────────────────────────────────────────────────

    def unit_active(self, unit: str) -> bool:
        return self.services.is_active(unit)

    def unit_enabled(self, unit: str) -> bool:
        return self.services.is_enabled(unit)

    def detect_web_server(self) -> str | None:
        """A running server beats an enabled one; nginx wins ties."""
        for check in (self.unit_active, self.unit_enabled):
            for name in ("nginx", "apache2"):
                if check(name):
                    return name
        return None

    # ── PHP ─────────────────────────────────────────────────────

    def detect_php_version(self) -> str | None:
        result = self._runner.run(
            self._settings.binaries.php, ["-r", PHP_VERSION_SNIPPET],
            timeout=self._settings.timeouts.probe,
        )
        version = result.stdout.strip()
        if result.failed or not _PHP_VERSION_RE.match(version):
            logger.debug("Cannot detect PHP version: %r", version or result.stderr_tail(200))
            return None
        return version

    def detect_fpm_socket(self, version: str | None) -> str | None:
        if version:
            expected = f"{PHP_RUN_DIR}/php{version}-fpm.sock"
            if self.path_exists(expected):
                return expected
        try:
            names = sorted(p.name for p in self.host_path(PHP_RUN_DIR).iterdir())
        except OSError:
            return None
        for name in names:
            if _FPM_SOCKET_NAME_RE.match(name):
                return f"{PHP_RUN_DIR}/{name}"
        return None

    # ── Postfix ─────────────────────────────────────────────────

    def postfix_setting(self, key: str) -> str | None:
        if not _POSTCONF_KEY_RE.match(key):
            return None
        result = self._runner.run(
            self._settings.binaries.postconf, ["-h", key],
            timeout=self._settings.timeouts.probe,
        )
        value = result.stdout.strip()
        return value if result.ok and value else None
