"""
Settings models — the typed shape of ``mailplane.yml``.

Every external program is referenced by absolute path here; nothing
is resolved through ``PATH`` at runtime.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field, field_validator


class Binaries(BaseModel):
    """Absolute paths of every program the engine may execute."""

    sudo: str = "/usr/bin/sudo"
    systemctl: str = "/usr/bin/systemctl"
    apt_get: str = "/usr/bin/apt-get"
    dpkg_query: str = "/usr/bin/dpkg-query"
    mysql: str = "/usr/bin/mysql"
    nginx: str = "/usr/sbin/nginx"
    apache2ctl: str = "/usr/sbin/apache2ctl"
    a2enconf: str = "/usr/sbin/a2enconf"
    a2disconf: str = "/usr/sbin/a2disconf"
    tee: str = "/usr/bin/tee"
    mv: str = "/usr/bin/mv"
    chmod: str = "/usr/bin/chmod"
    chown: str = "/usr/bin/chown"
    rm: str = "/usr/bin/rm"
    ln: str = "/usr/bin/ln"
    php: str = "/usr/bin/php"
    postconf: str = "/usr/sbin/postconf"
    unbound_checkconf: str = "/usr/sbin/unbound-checkconf"
    dig: str = "/usr/bin/dig"

    @field_validator("*")
    @classmethod
    def _absolute(cls, v: str) -> str:
        if not os.path.isabs(v):
            raise ValueError(f"binary path must be absolute: {v!r}")
        return v


class Timeouts(BaseModel):
    """Per-command timeouts in seconds."""

    probe: float = 5
    package: float = 300
    service: float = 30
    enable: float = 15
    db: float = 10
    schema_import: float = 30
    write: float = 10
    syntax: float = 10
    reload: float = 30


class DatabaseSettings(BaseModel):
    host: str = "localhost"


class WebmailSettings(BaseModel):
    php_packages: list[str] = Field(default_factory=lambda: [
        "php-fpm", "php-mysql", "php-gd", "php-imap",
        "php-curl", "php-xml", "php-mbstring", "php-intl",
    ])
    packages: list[str] = Field(default_factory=lambda: [
        "roundcube", "roundcube-mysql", "roundcube-plugins",
    ])
    db_name: str = "roundcube"
    db_user: str = "roundcube"
    schema_path: str = "/usr/share/roundcube/SQL/mysql.initial.sql"
    document_root: str = "/var/lib/roundcube/public_html"
    config_mode: int = 0o640
    config_owner: str = "root:www-data"
    product_name: str = "Mailplane Webmail"


class DnsSettings(BaseModel):
    default_forwarders: list[str] = Field(default_factory=lambda: ["1.1.1.1", "8.8.8.8"])
    probe_name: str = "example.com"


class Settings(BaseModel):
    """Top-level settings for the dashboard and CLI."""

    system_root: str = "/"                      # prefix for read-only probes
    state_dir: str = "/var/lib/mailplane"       # audit ledger lives here
    lock_dir: str = "/run/mailplane/locks"
    stale_lock_seconds: float = 900.0
    admin_token: str = ""

    binaries: Binaries = Field(default_factory=Binaries)
    timeouts: Timeouts = Field(default_factory=Timeouts)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    webmail: WebmailSettings = Field(default_factory=WebmailSettings)
    dns: DnsSettings = Field(default_factory=DnsSettings)

    @field_validator("stale_lock_seconds")
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("stale_lock_seconds must be positive")
        return v
