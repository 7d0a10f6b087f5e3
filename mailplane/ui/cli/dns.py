"""
CLI commands for local DNS resolution.

Usage::

    mailplane dns forward
    mailplane dns forward --forwarder 9.9.9.9 --forwarder 149.112.112.112
"""

from __future__ import annotations

import json

import click

from mailplane.core.errors import ProvisioningError
from mailplane.ui.cli.common import fail, load_context


@click.group("dns")
def dns() -> None:
    """DNS — local unbound resolver with upstream forwarding."""


@dns.command("forward")
@click.option("--forwarder", "forwarders", multiple=True, help="Upstream resolver IP (repeatable).")
@click.option("--no-restart-postfix", is_flag=True, help="Leave postfix running as is.")
@click.option("--reconfigure", is_flag=True, help="Run even if forwarding is already set up.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def forward(
    ctx: click.Context,
    forwarders: tuple[str, ...],
    no_restart_postfix: bool,
    reconfigure: bool,
    as_json: bool,
) -> None:
    """Install unbound and point the host's resolver at it."""
    from mailplane.core.use_cases.dns_forward import setup_dns_forwarding

    pctx = load_context(ctx)
    try:
        result = setup_dns_forwarding(
            pctx,
            forwarders=list(forwarders) if forwarders else None,
            restart_postfix=not no_restart_postfix,
            reconfigure=reconfigure,
        )
    except ProvisioningError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"✅ Resolving through {result.resolver}", fg="green", bold=True)
    click.echo(f"   Forwarders: {', '.join(result.forwarders)}")
    for w in result.warnings:
        click.secho(f"   ⚠️ {w}", fg="yellow")
