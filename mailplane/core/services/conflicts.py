"""
Conflict resolver — stop and disable a service's declared counterpart.

Runs strictly before the target is enabled, so two services that bind
the same ports are never both started.
"""

from __future__ import annotations

import logging

from mailplane.core.models.provisioning import ServiceDescriptor
from mailplane.core.services import catalog
from mailplane.core.services.systemd import ServiceManager

logger = logging.getLogger(__name__)


class ConflictResolver:
    def __init__(self, services: ServiceManager):
        self._services = services

    def resolve_conflicts(self, target: ServiceDescriptor) -> list[str]:
        """Stop then disable the counterpart of ``target`` if it is up.

        Best-effort: failures are logged and returned as warning
        messages, never raised. An empty list means nothing went wrong.
        """
        other = catalog.counterpart(target)
        if other is None:
            return []

        active = self._services.is_active(other.unit)
        enabled = self._services.is_enabled(other.unit)
        if not active and not enabled:
            return []

        logger.info("Resolving conflict: %s conflicts with %s", target.name, other.name)
        messages: list[str] = []
        if active:
            result = self._services.stop(other.unit)
            if result.failed:
                messages.append(f"Could not stop {other.name}: {result.stderr_tail(200)}")
        if enabled:
            result = self._services.disable(other.unit)
            if result.failed:
                messages.append(f"Could not disable {other.name}: {result.stderr_tail(200)}")
        return messages
