"""
Service catalog — the closed set of services the dashboard may manage.

Conflict pairs are declared once and expanded symmetrically, so
``conflicts_with`` on either side names the other.
"""

from __future__ import annotations

from mailplane.core.models.provisioning import ServiceDescriptor

_BASE: list[ServiceDescriptor] = [
    ServiceDescriptor(name="postfix", unit="postfix", description="SMTP server"),
    ServiceDescriptor(name="dovecot", unit="dovecot", description="IMAP/POP3 server"),
    ServiceDescriptor(name="opendkim", unit="opendkim", description="DKIM signing"),
    ServiceDescriptor(name="mariadb", unit="mariadb", description="Database server"),
    ServiceDescriptor(name="spamassassin", unit="spamassassin", description="Spam filter"),
    ServiceDescriptor(name="apache2", unit="apache2", description="Apache web server"),
    ServiceDescriptor(name="nginx", unit="nginx", description="Nginx web server"),
    ServiceDescriptor(
        name="unbound", unit="unbound",
        needs_restart_not_start=True, description="Local DNS resolver",
    ),
    ServiceDescriptor(
        name="rsyslog", unit="rsyslog",
        needs_restart_not_start=True, description="System logging",
    ),
]

CONFLICT_PAIRS: list[tuple[str, str]] = [
    ("nginx", "apache2"),   # both bind :80 and :443
]


def _build() -> dict[str, ServiceDescriptor]:
    catalog = {d.name: d for d in _BASE}
    for a, b in CONFLICT_PAIRS:
        catalog[a] = catalog[a].model_copy(update={"conflicts_with": b})
        catalog[b] = catalog[b].model_copy(update={"conflicts_with": a})
    return catalog


SERVICES: dict[str, ServiceDescriptor] = _build()
SERVICE_NAMES: frozenset[str] = frozenset(SERVICES)


def get_service(name: str) -> ServiceDescriptor | None:
    return SERVICES.get(name)


def counterpart(descriptor: ServiceDescriptor) -> ServiceDescriptor | None:
    """The descriptor this one conflicts with, if any."""
    if descriptor.conflicts_with is None:
        return None
    return SERVICES.get(descriptor.conflicts_with)
