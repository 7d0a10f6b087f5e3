"""
Idempotency guard — is the target already provisioned?

Each session kind has a set of independent checks against the live
system. The target counts as done only when every check passes; a
single failing check means the session must run (again).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from mailplane.core.errors import AlreadyConfiguredError, InvalidInputError
from mailplane.core.models.provisioning import SessionKind
from mailplane.core.services import catalog, paths
from mailplane.core.services.probe import SystemProbe

logger = logging.getLogger(__name__)

_ALREADY_DONE = {
    SessionKind.WEBMAIL_SETUP: "Webmail is already configured",
    SessionKind.SERVICE_ENABLE: "Service is already enabled and running",
    SessionKind.DNS_FORWARD: "DNS forwarding is already configured",
}


def first_nameserver(resolv_conf: str | None) -> str | None:
    for line in (resolv_conf or "").splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0] == "nameserver":
            return parts[1]
    return None


class IdempotencyGuard:
    def __init__(self, probe: SystemProbe):
        self._probe = probe

    def checks(self, kind: SessionKind, target: Mapping[str, str]) -> dict[str, bool]:
        """Run every sub-check for ``kind`` and return them by name."""
        if kind is SessionKind.WEBMAIL_SETUP:
            return self._webmail(target.get("web_server"))
        if kind is SessionKind.SERVICE_ENABLE:
            return self._service(target.get("service", ""))
        if kind is SessionKind.DNS_FORWARD:
            return self._dns()
        raise InvalidInputError(f"Unknown session kind: {kind}")

    def is_fully_done(self, kind: SessionKind, target: Mapping[str, str]) -> bool:
        return all(self.checks(kind, target).values())

    def ensure_not_done(
        self,
        kind: SessionKind,
        target: Mapping[str, str],
        reconfigure: bool = False,
    ) -> bool:
        """Raise unless the session should run.

        Returns:
            Whether the target was already fully provisioned (only
            possible to observe with ``reconfigure=True``).

        Raises:
            AlreadyConfiguredError: Fully done and no reconfigure asked.
        """
        checks = self.checks(kind, target)
        done = all(checks.values())
        logger.debug("Guard %s %s: %s", kind.value, dict(target), checks)
        if done and not reconfigure:
            raise AlreadyConfiguredError(_ALREADY_DONE[kind])
        return done

    # ── Per-kind checks ─────────────────────────────────────────

    def _webmail(self, web_server: str | None) -> dict[str, bool]:
        p = self._probe
        if web_server == "nginx":
            include = p.path_exists(paths.NGINX_SITE_ENABLED)
        elif web_server == "apache2":
            include = p.path_exists(paths.APACHE_CONF_ENABLED)
        else:
            include = False
        return {
            "package_installed": p.package_installed("roundcube"),
            "config_present": p.path_exists(paths.ROUNDCUBE_CONFIG),
            "web_server_include_enabled": include,
            "web_server_running": bool(web_server) and p.unit_active(web_server),
        }

    def _service(self, name: str) -> dict[str, bool]:
        descriptor = catalog.get_service(name)
        if descriptor is None:
            raise InvalidInputError(f"Unknown service: {name}")
        return {
            "unit_enabled": self._probe.unit_enabled(descriptor.unit),
            "unit_active": self._probe.unit_active(descriptor.unit),
        }

    def _dns(self) -> dict[str, bool]:
        p = self._probe
        return {
            "package_installed": p.package_installed("unbound"),
            "forward_config_present": p.path_exists(paths.UNBOUND_FORWARD_CONF),
            "resolver_local": first_nameserver(p.read_text(paths.RESOLV_CONF)) == paths.LOCAL_RESOLVER,
            "unbound_running": p.unit_active("unbound"),
        }
