"""
Webmail setup — install Roundcube and publish it at https://<domain>/webmail.

Flow (fresh install):
    php runtime → packages → php-fpm → secrets → database → db user
    → config.inc.php → schema → verify access → web server sub-chain

The web server sub-chain is its own rollback scope: when the syntax
test fails, every file it wrote is removed and the running web server
is never reloaded. Earlier phases are idempotent and carry no rollback;
a retry simply re-runs them.

With ``reconfigure`` on a fully provisioned host only the web server
sub-chain runs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from mailplane.core.context import ProvisioningContext
from mailplane.core.engine.phases import ExecutionReport, chain
from mailplane.core.errors import InvalidInputError, PhaseError, PrerequisiteError
from mailplane.core.models.provisioning import CommandResult, Phase, ProvisioningSession, SessionKind
from mailplane.core.services import paths
from mailplane.core.services.config_writer import render
from mailplane.core.services.secrets import generate_db_password, generate_des_key
from mailplane.core.services.validation import (
    dsn_encode,
    php_escape,
    validate_db_host,
    validate_domain,
    validate_email,
    validate_identifier,
    validate_socket_path,
)
from mailplane.core.use_cases.common import apt_install, require_ok, write_phase

logger = logging.getLogger(__name__)

LOCK_NAME = "webmail-setup"
WEBMAIL_PATH = "/webmail"
DB_PRIVILEGES = "SELECT, INSERT, UPDATE, DELETE, CREATE, ALTER, DROP, INDEX"
LOCAL_DB_HOSTS = ("localhost", "127.0.0.1", "::1")


@dataclass
class WebmailSetupResult:
    domain: str
    web_server: str
    reconfigured: bool = False
    session_id: str = ""
    report: ExecutionReport | None = None

    @property
    def webmail_url(self) -> str:
        return f"https://{self.domain}{WEBMAIL_PATH}"

    @property
    def dns_instructions(self) -> list[str]:
        return [
            f"Ensure the A record for {self.domain} points to this server",
            f"Verify the TLS certificate covers {self.domain}",
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "webmailUrl": self.webmail_url,
            "webServer": self.web_server,
            "dnsInstructions": self.dns_instructions,
            "reconfigured": self.reconfigured,
            "sessionId": self.session_id,
        }


@dataclass
class _SetupState:
    """Values produced by one phase and consumed by a later one."""

    php_version: str | None = None
    fpm_socket: str | None = None
    db_password: str = field(default="", repr=False)
    des_key: str = field(default="", repr=False)


class _WebmailPhases:
    """Builds the phase lists for one setup request."""

    def __init__(self, ctx: ProvisioningContext, domain: str, admin_email: str, web_server: str):
        self.ctx = ctx
        self.domain = domain
        self.admin_email = admin_email
        self.web_server = web_server
        self.state = _SetupState()

        wm = ctx.settings.webmail
        self.db_name = validate_identifier(wm.db_name, "database name")
        self.db_user = validate_identifier(wm.db_user, "database user")
        self.db_host = validate_db_host(ctx.settings.database.host)

    def _is_nginx(self) -> bool:
        return self.web_server == "nginx"

    # ── Phase lists ─────────────────────────────────────────────

    def full(self) -> list[Phase]:
        return [
            Phase("install php runtime", self.install_php, when=self._is_nginx),
            Phase("install webmail packages", self.install_packages),
            Phase("start php-fpm", self.start_php_fpm, when=self._is_nginx),
            Phase("generate secrets", self.generate_secrets),
            Phase("create database", self.create_database),
            Phase("create database user", self.create_database_user),
            write_phase(
                self.ctx, "write webmail config", paths.ROUNDCUBE_CONFIG, self.roundcube_config,
                mode=self.ctx.settings.webmail.config_mode,
                owner=self.ctx.settings.webmail.config_owner,
                undo=False,
            ),
            Phase("import schema", self.import_schema),
            Phase("verify database access", self.verify_database),
            self.web_server_chain(),
        ]

    def reconfigure(self) -> list[Phase]:
        return [
            Phase("locate php-fpm", self.locate_php_fpm, when=self._is_nginx),
            self.web_server_chain(),
        ]

    def web_server_chain(self) -> Phase:
        if self._is_nginx():
            steps = self._nginx_steps()
        else:
            steps = self._apache_steps()
        return chain("configure web server", steps, label=f"webmail/{self.web_server}")

    # ── Packages and PHP ────────────────────────────────────────

    def install_php(self) -> str:
        return apt_install(self.ctx, self.ctx.settings.webmail.php_packages, "Failed to install PHP runtime")

    def install_packages(self) -> str:
        out = apt_install(self.ctx, self.ctx.settings.webmail.packages, "Failed to install Roundcube packages")
        if not self.ctx.probe.package_installed("roundcube"):
            raise PhaseError("Roundcube package is not installed after apt-get")
        return out

    def _detect_fpm(self) -> str:
        probe = self.ctx.probe
        version = probe.detect_php_version()
        if version is None:
            raise PhaseError("Could not detect the installed PHP version")
        self.state.php_version = version
        return version

    def _discover_socket(self, version: str) -> str:
        socket = self.ctx.probe.detect_fpm_socket(version)
        if socket is None:
            raise PhaseError(f"PHP-FPM socket not found for PHP {version}")
        try:
            self.state.fpm_socket = validate_socket_path(socket)
        except InvalidInputError as e:
            raise PhaseError(e.message) from None
        return socket

    def start_php_fpm(self) -> str:
        version = self._detect_fpm()
        unit = f"php{version}-fpm"
        require_ok(self.ctx.services.enable(unit), f"Failed to enable {unit}")
        require_ok(self.ctx.services.start(unit), f"Failed to start {unit}")
        return f"{unit} on {self._discover_socket(version)}"

    def locate_php_fpm(self) -> str:
        return self._discover_socket(self._detect_fpm())

    # ── Database ────────────────────────────────────────────────

    def generate_secrets(self) -> str:
        self.state.db_password = generate_db_password()
        self.state.des_key = generate_des_key()
        return "generated database password and session key"

    def _mysql_host_args(self) -> list[str]:
        if self.db_host in LOCAL_DB_HOSTS:
            return []
        return ["-h", self.db_host]

    def _grant_host(self) -> str:
        return "localhost" if self.db_host in LOCAL_DB_HOSTS else "%"

    def _mysql_root(self, sql: str, *args: str, timeout: float | None = None) -> CommandResult:
        return self.ctx.runner.run_privileged(
            self.ctx.settings.binaries.mysql,
            [*self._mysql_host_args(), *args],
            timeout=timeout or self.ctx.settings.timeouts.db,
            stdin=sql,
        )

    def create_database(self) -> str:
        sql = (
            f"CREATE DATABASE IF NOT EXISTS `{self.db_name}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;\n"
        )
        require_ok(self._mysql_root(sql), "Failed to create the webmail database")
        return f"database {self.db_name}"

    def create_database_user(self) -> str:
        # Password is alphanumeric by construction; it only ever travels on stdin
        account = f"'{self.db_user}'@'{self._grant_host()}'"
        password = self.state.db_password
        sql = (
            f"CREATE USER IF NOT EXISTS {account} IDENTIFIED BY '{password}';\n"
            f"ALTER USER {account} IDENTIFIED BY '{password}';\n"
            f"GRANT {DB_PRIVILEGES} ON `{self.db_name}`.* TO {account};\n"
            "FLUSH PRIVILEGES;\n"
        )
        require_ok(self._mysql_root(sql), "Failed to create the webmail database user")
        return f"user {self.db_user} on {self.db_name}"

    def import_schema(self) -> str:
        schema_path = self.ctx.settings.webmail.schema_path
        schema = self.ctx.probe.read_text(schema_path)
        if schema is None:
            raise PhaseError(f"Roundcube schema not found at {schema_path}")

        result = self._mysql_root(
            schema, self.db_name, timeout=self.ctx.settings.timeouts.schema_import,
        )
        if result.ok:
            return "schema imported"
        if "already exists" in result.stderr:
            return "schema already present"
        raise PhaseError.from_result("Failed to import the Roundcube schema", result)

    def verify_database(self) -> str:
        result = self.ctx.runner.run(
            self.ctx.settings.binaries.mysql,
            [
                "-u", self.db_user, *self._mysql_host_args(),
                "-e", f"SELECT 1 FROM `{self.db_name}`.users LIMIT 0",
            ],
            timeout=self.ctx.settings.timeouts.db,
            env={"MYSQL_PWD": self.state.db_password},
        )
        require_ok(result, "Failed to verify webmail database access")
        return "database access verified"

    def roundcube_config(self) -> str:
        wm = self.ctx.settings.webmail

        def dsn(value: str) -> str:
            return php_escape(dsn_encode(value))

        return render(
            "roundcube/config.inc.php.j2",
            db_user=dsn(self.db_user),
            db_password=dsn(self.state.db_password),
            db_host=dsn(self.db_host),
            db_name=dsn(self.db_name),
            domain=php_escape(self.domain),
            admin_email=php_escape(self.admin_email),
            product_name=php_escape(wm.product_name),
            des_key=php_escape(self.state.des_key),
        )

    # ── Web server ──────────────────────────────────────────────

    def _nginx_steps(self) -> list[Phase]:
        ctx = self.ctx
        document_root = ctx.settings.webmail.document_root
        link_existed: dict[str, bool] = {}

        def snippet() -> str:
            if self.state.fpm_socket is None:
                raise PhaseError("PHP-FPM socket is unknown")
            return render(
                "nginx/roundcube-webmail.conf.j2",
                document_root=document_root,
                fpm_socket=self.state.fpm_socket,
            )

        def site() -> str:
            return render(
                "nginx/roundcube-webmail-site.j2",
                domain=self.domain,
                snippet_path=paths.NGINX_SNIPPET,
            )

        def enable_site() -> str:
            link_existed["before"] = ctx.probe.path_exists(paths.NGINX_SITE_ENABLED)
            ctx.writer.link(paths.NGINX_SITE, paths.NGINX_SITE_ENABLED)
            return paths.NGINX_SITE_ENABLED

        def disable_site() -> None:
            if not link_existed.get("before"):
                ctx.writer.remove(paths.NGINX_SITE_ENABLED)

        def syntax_test() -> str:
            result = ctx.runner.run_privileged(
                ctx.settings.binaries.nginx, ["-t"], timeout=ctx.settings.timeouts.syntax,
            )
            require_ok(result, "Nginx configuration test failed")
            return "syntax ok"

        return [
            write_phase(ctx, "write nginx snippet", paths.NGINX_SNIPPET, snippet),
            write_phase(ctx, "write nginx site", paths.NGINX_SITE, site),
            Phase("enable nginx site", enable_site, rollback=disable_site),
            Phase("test nginx config", syntax_test),
            Phase("reload nginx", self._reload("nginx")),
        ]

    def _apache_steps(self) -> list[Phase]:
        ctx = self.ctx
        binaries = ctx.settings.binaries
        timeouts = ctx.settings.timeouts
        conf_enabled: dict[str, bool] = {}

        def conf() -> str:
            return render(
                "apache2/roundcube-webmail.conf.j2",
                document_root=ctx.settings.webmail.document_root,
            )

        def enable_conf() -> str:
            conf_enabled["before"] = ctx.probe.path_exists(paths.APACHE_CONF_ENABLED)
            result = ctx.runner.run_privileged(
                binaries.a2enconf, [paths.APACHE_CONF_NAME], timeout=timeouts.enable,
            )
            require_ok(result, "Failed to enable the webmail Apache config")
            return paths.APACHE_CONF_NAME

        def disable_conf() -> None:
            if conf_enabled.get("before"):
                return
            result = ctx.runner.run_privileged(
                binaries.a2disconf, [paths.APACHE_CONF_NAME], timeout=timeouts.enable,
            )
            require_ok(result, "Failed to disable the webmail Apache config")

        def syntax_test() -> str:
            result = ctx.runner.run_privileged(
                binaries.apache2ctl, ["configtest"], timeout=timeouts.syntax,
            )
            require_ok(result, "Apache configuration test failed")
            return "syntax ok"

        return [
            write_phase(ctx, "write apache config", paths.APACHE_CONF, conf),
            Phase("enable apache config", enable_conf, rollback=disable_conf),
            Phase("test apache config", syntax_test),
            Phase("reload apache2", self._reload("apache2")),
        ]

    def _reload(self, unit: str):
        def run() -> str:
            require_ok(self.ctx.services.reload(unit), f"Failed to reload {unit}")
            return f"reloaded {unit}"
        return run


# ── Use cases ───────────────────────────────────────────────────


def setup_webmail(
    ctx: ProvisioningContext,
    domain: object,
    admin_email: object,
    reconfigure: bool = False,
) -> WebmailSetupResult:
    """Install and publish Roundcube.

    Raises:
        InvalidInputError: Bad domain or email (nothing ran).
        PrerequisiteError: Neither nginx nor apache2 is running or enabled.
        LockHeldError: Another webmail setup is in progress.
        AlreadyConfiguredError: Fully provisioned and no reconfigure asked.
        PhaseError: A phase failed; its rollback scope was unwound.
    """
    domain = validate_domain(domain)
    admin_email = validate_email(admin_email)

    web_server = ctx.probe.detect_web_server()
    if web_server is None:
        raise PrerequisiteError(
            "No supported web server detected. Install and start nginx or apache2 first."
        )

    builder = _WebmailPhases(ctx, domain, admin_email, web_server)
    session = ProvisioningSession(
        kind=SessionKind.WEBMAIL_SETUP,
        lock_name=LOCK_NAME,
        target={"domain": domain, "admin_email": admin_email, "web_server": web_server},
    )
    result = WebmailSetupResult(domain=domain, web_server=web_server, session_id=session.id)

    def precheck() -> None:
        done = ctx.guard.ensure_not_done(session.kind, session.target, reconfigure)
        result.reconfigured = done
        session.phases = builder.reconfigure() if done else builder.full()
        logger.info(
            "Webmail %s for %s via %s",
            "reconfigure" if done else "setup", domain, web_server,
        )

    outcome = ctx.sessions.run(session, precheck=precheck)
    result.report = outcome.report
    outcome.raise_for_failure()
    return result


def webmail_status(ctx: ProvisioningContext) -> dict[str, Any]:
    """Read-only view of the Roundcube installation."""
    probe = ctx.probe
    web_server = probe.detect_web_server()
    package_installed, version = probe.package_status("roundcube")
    config_present = probe.path_exists(paths.ROUNDCUBE_CONFIG)

    checks = ctx.guard.checks(SessionKind.WEBMAIL_SETUP, {"web_server": web_server or ""})
    include_enabled = checks["web_server_include_enabled"]
    running = checks["web_server_running"]
    installed = all(checks.values())

    domain = None
    hostname = probe.postfix_setting("myhostname")
    if hostname:
        try:
            domain = validate_domain(hostname)
        except InvalidInputError:
            domain = None

    legacy_site = probe.path_exists(paths.NGINX_LEGACY_SITE_ENABLED)
    needs_reconfigure = package_installed and config_present and (not include_enabled or legacy_site)

    if installed:
        status = "running"
    elif package_installed and config_present and not running:
        status = "stopped"
    else:
        status = "unknown"

    return {
        "installed": installed,
        "url": f"https://{domain}{WEBMAIL_PATH}" if installed and domain else None,
        "status": status,
        "version": version,
        "domain": domain,
        "webServer": web_server or "unknown",
        "needsReconfigure": needs_reconfigure,
    }
