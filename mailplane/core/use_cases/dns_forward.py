"""
DNS forwarding — route the host's lookups through a local unbound.

Mail servers do many DNS lookups (RBLs, SPF, DKIM); a local caching
resolver keeps those fast and independent of the provider's resolver.

Flow:
    install unbound → forward config → checkconf → restart unbound
    → systemd-resolved drop-in → verify 127.0.0.1 answers → resolv.conf
    → restart postfix (non-fatal)

The system resolver is switched only after unbound has answered a
query, and resolv.conf is restored from its captured content if any
later phase fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from mailplane.core.context import ProvisioningContext
from mailplane.core.engine.phases import ExecutionReport
from mailplane.core.errors import PhaseError
from mailplane.core.models.provisioning import Phase, ProvisioningSession, SessionKind
from mailplane.core.services import paths
from mailplane.core.services.config_writer import render
from mailplane.core.services.validation import validate_domain, validate_forwarders
from mailplane.core.use_cases.common import apt_install, require_ok, unit_phase, write_phase

logger = logging.getLogger(__name__)

LOCK_NAME = "dns-forward"


@dataclass
class DnsForwardResult:
    forwarders: list[str]
    resolver: str = paths.LOCAL_RESOLVER
    reconfigured: bool = False
    session_id: str = ""
    warnings: list[str] = field(default_factory=list)
    report: ExecutionReport | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "resolver": self.resolver,
            "forwarders": list(self.forwarders),
            "warnings": list(self.warnings),
            "reconfigured": self.reconfigured,
            "sessionId": self.session_id,
        }


def _dns_phases(ctx: ProvisioningContext, forwarders: list[str], restart_postfix: bool) -> list[Phase]:
    binaries = ctx.settings.binaries
    timeouts = ctx.settings.timeouts
    probe_name = validate_domain(ctx.settings.dns.probe_name)

    def install() -> str:
        out = apt_install(ctx, ["unbound"], "Failed to install unbound")
        if not ctx.probe.package_installed("unbound"):
            raise PhaseError("unbound is not installed after apt-get")
        return out

    def forward_conf() -> str:
        return render(
            "unbound/mailplane-forward.conf.j2",
            forwarders=forwarders,
            ipv6=any(":" in a for a in forwarders),
        )

    def checkconf() -> str:
        result = ctx.runner.run_privileged(
            binaries.unbound_checkconf, [], timeout=timeouts.syntax,
        )
        require_ok(result, "unbound configuration check failed")
        return result.stdout.strip() or "config ok"

    forward = write_phase(ctx, "write forward config", paths.UNBOUND_FORWARD_CONF, forward_conf, mode=0o644)
    restarted: list[bool] = []

    def remove_forward_config() -> None:
        forward.rollback()
        # unbound only drops the forwarding zone once restarted without the file
        if restarted:
            ctx.services.restart("unbound")

    def restart_unbound() -> str:
        require_ok(ctx.services.enable("unbound"), "Failed to enable unbound")
        restarted.append(True)
        require_ok(ctx.services.restart("unbound"), "Failed to restart unbound")
        return "unbound restarted"

    def resolved_active() -> bool:
        return ctx.services.is_active("systemd-resolved")

    def resolved_conf() -> str:
        return render("systemd/mailplane-unbound.conf.j2", resolver=paths.LOCAL_RESOLVER)

    dropin = write_phase(ctx, "write resolved drop-in", paths.RESOLVED_DROPIN, resolved_conf)

    def configure_resolved() -> str:
        out = dropin.run()
        require_ok(ctx.services.restart("systemd-resolved"), "Failed to restart systemd-resolved")
        return out

    def unconfigure_resolved() -> None:
        dropin.rollback()
        ctx.services.restart("systemd-resolved")

    def verify() -> str:
        result = ctx.runner.run(
            binaries.dig,
            [f"@{paths.LOCAL_RESOLVER}", "+short", "+time=3", "+tries=2", probe_name, "A"],
            timeout=timeouts.probe * 2,
        )
        require_ok(result, "Local resolver did not answer")
        answers = [line for line in result.stdout.splitlines() if line.strip()]
        if not answers:
            raise PhaseError(f"Local resolver returned no answer for {probe_name}")
        return f"{probe_name} -> {answers[-1]}"

    def resolv_conf() -> str:
        return render("resolv/resolv.conf.j2", resolver=paths.LOCAL_RESOLVER)

    def postfix_running() -> bool:
        return restart_postfix and ctx.services.is_active("postfix")

    return [
        Phase("install unbound", install),
        Phase(forward.name, forward.run, rollback=remove_forward_config),
        Phase("check unbound config", checkconf),
        Phase("restart unbound", restart_unbound),
        Phase(
            "configure systemd-resolved", configure_resolved,
            rollback=unconfigure_resolved, when=resolved_active,
        ),
        Phase("verify resolver", verify),
        write_phase(ctx, "point resolv.conf at unbound", paths.RESOLV_CONF, resolv_conf, mode=0o644),
        unit_phase(ctx, "restart postfix", "restart", "postfix", when=postfix_running, fatal=False),
    ]


def setup_dns_forwarding(
    ctx: ProvisioningContext,
    forwarders: object = None,
    restart_postfix: bool = True,
    reconfigure: bool = False,
) -> DnsForwardResult:
    """Install unbound as a forwarding resolver and switch the host to it.

    Raises:
        InvalidInputError: Bad forwarder list (nothing ran).
        LockHeldError: Another DNS session is in progress.
        AlreadyConfiguredError: Already forwarding and no reconfigure asked.
        PhaseError: A phase failed; completed phases were rolled back.
    """
    if forwarders is None:
        forwarders = list(ctx.settings.dns.default_forwarders)
    addresses = validate_forwarders(forwarders)

    session = ProvisioningSession(
        kind=SessionKind.DNS_FORWARD,
        lock_name=LOCK_NAME,
        target={"forwarders": ",".join(addresses)},
        phases=_dns_phases(ctx, addresses, restart_postfix),
    )
    result = DnsForwardResult(forwarders=addresses, session_id=session.id)

    def precheck() -> None:
        result.reconfigured = ctx.guard.ensure_not_done(session.kind, session.target, reconfigure)

    outcome = ctx.sessions.run(session, precheck=precheck)
    result.report = outcome.report
    outcome.raise_for_failure()
    result.warnings = list(outcome.report.warnings)
    return result
