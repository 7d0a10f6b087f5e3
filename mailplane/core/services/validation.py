"""
Input validation — every value that reaches a command or a config file.

All validators raise ``InvalidInputError`` and return the normalized
value, so callers can write ``domain = validate_domain(raw)``.
"""

from __future__ import annotations

import ipaddress
import re
from urllib.parse import quote

from mailplane.core.errors import InvalidInputError

_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
_DOMAIN_RE = re.compile(rf"^{_LABEL}(?:\.{_LABEL})*\.[a-zA-Z]{{2,63}}$")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
_SERVICE_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_SOCKET_RE = re.compile(r"^/run/php/php[0-9.]+-fpm\.sock$")
_DB_HOST_RE = re.compile(r"^[a-zA-Z0-9._-]+$")
_IDENTIFIER_RE = re.compile(r"^[a-zA-Z0-9_]{1,64}$")

MAX_DOMAIN_LENGTH = 253
MAX_EMAIL_LENGTH = 254
MAX_FORWARDERS = 4


def validate_domain(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInputError("Domain is required")
    domain = value.strip().lower()
    if len(domain) > MAX_DOMAIN_LENGTH or not _DOMAIN_RE.match(domain):
        raise InvalidInputError(f"Invalid domain: {value!r}")
    return domain


def validate_email(value: object) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidInputError("Email address is required")
    email = value.strip()
    if len(email) > MAX_EMAIL_LENGTH or not _EMAIL_RE.match(email):
        raise InvalidInputError(f"Invalid email address: {value!r}")
    return email


def validate_service_name(value: object, allowed: set[str] | frozenset[str]) -> str:
    """Check the name format first, then membership in the allow-list."""
    if not isinstance(value, str) or not _SERVICE_RE.match(value):
        raise InvalidInputError(f"Invalid service name: {value!r}")
    if value not in allowed:
        raise InvalidInputError(f"Unknown service: {value}")
    return value


def validate_socket_path(value: str) -> str:
    if not _SOCKET_RE.match(value):
        raise InvalidInputError(f"Unexpected PHP-FPM socket path: {value!r}")
    return value


def validate_db_host(value: str) -> str:
    if not value or not _DB_HOST_RE.match(value):
        raise InvalidInputError(f"Invalid database host: {value!r}")
    return value


def validate_identifier(value: str, what: str = "identifier") -> str:
    """Database and user names that are interpolated into SQL."""
    if not _IDENTIFIER_RE.match(value):
        raise InvalidInputError(f"Invalid {what}: {value!r}")
    return value


def validate_forwarders(values: object) -> list[str]:
    """IPv4/IPv6 literals only, 1 to 4 entries, duplicates dropped."""
    if not isinstance(values, list) or not values:
        raise InvalidInputError("At least one forwarder is required")
    if len(values) > MAX_FORWARDERS:
        raise InvalidInputError(f"At most {MAX_FORWARDERS} forwarders are allowed")

    result: list[str] = []
    for raw in values:
        if not isinstance(raw, str):
            raise InvalidInputError(f"Invalid forwarder: {raw!r}")
        try:
            addr = str(ipaddress.ip_address(raw.strip()))
        except ValueError:
            raise InvalidInputError(f"Invalid forwarder address: {raw!r}") from None
        if addr not in result:
            result.append(addr)
    return result


# ── Escaping ────────────────────────────────────────────────────


def php_escape(value: str) -> str:
    """Escape a value for a single-quoted PHP string literal."""
    if "\0" in value:
        raise InvalidInputError("Null byte in PHP string value")
    return value.replace("\\", "\\\\").replace("'", "\\'")


def dsn_encode(value: str) -> str:
    """Percent-encode one DSN component (user, password, host, name)."""
    return quote(value, safe="-_.!~*'()")
