"""
CLI commands for OS service control.

Usage::

    mailplane services enable postfix dovecot
    mailplane services list
    mailplane services status --json
    mailplane services restart postfix
"""

from __future__ import annotations

import json
import sys

import click

from mailplane.core.errors import ProvisioningError
from mailplane.ui.cli.common import EXIT_FAILED, fail, load_context


@click.group()
def services() -> None:
    """Services — enable, inspect and control allow-listed system services."""


@services.command("enable")
@click.argument("names", nargs=-1, required=True)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def enable(ctx: click.Context, names: tuple[str, ...], as_json: bool) -> None:
    """Enable and start NAMES, stopping any conflicting service first."""
    from mailplane.core.use_cases.services import enable_services

    pctx = load_context(ctx)
    try:
        result = enable_services(pctx, {name: True for name in names})
    except ProvisioningError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        for r in result.results:
            if r.error:
                click.secho(f"   ❌ {r.name}: {r.error}", fg="red")
            else:
                click.secho(f"   ✅ {r.name}: enabled, running", fg="green")
            for w in r.warnings:
                click.secho(f"      ⚠️ {w}", fg="yellow")

    if not result.all_ok:
        sys.exit(EXIT_FAILED)


@services.command("list")
def list_services() -> None:
    """List the services that may be managed."""
    from mailplane.core.services.catalog import SERVICES

    for name, d in SERVICES.items():
        extra = f" (conflicts with {d.conflicts_with})" if d.conflicts_with else ""
        click.echo(f"   {name:<14} {d.description}{extra}")


@services.command("status")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show status, PID, uptime and memory of every managed service."""
    from mailplane.core.use_cases.services import service_statuses

    statuses = service_statuses(load_context(ctx))

    if as_json:
        click.echo(json.dumps([s.to_dict() for s in statuses], indent=2))
        return

    colors = {"running": "green", "stopped": "yellow", "failed": "red"}
    for s in statuses:
        line = f"   {s.name:<14} {s.status:<8}"
        if s.pid:
            line += f" pid {s.pid:<7}"
        if s.uptime_formatted:
            line += f" up {s.uptime_formatted:<11}"
        if s.memory_bytes is not None:
            line += f" {s.memory_bytes / (1024 * 1024):.1f} MiB"
        click.secho(line.rstrip(), fg=colors.get(s.status))


def _action_command(action: str) -> click.Command:
    @click.argument("name")
    @click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
    @click.pass_context
    def command(ctx: click.Context, name: str, as_json: bool) -> None:
        from mailplane.core.use_cases.services import service_action

        pctx = load_context(ctx)
        try:
            result = service_action(pctx, name, action)
        except ProvisioningError as e:
            fail(e, as_json)

        if as_json:
            click.echo(json.dumps(result.to_dict(), indent=2))
        else:
            click.secho(f"   ✅ {result.name}: {result.message} ({result.status})", fg="green")

    command.__doc__ = f"{action.capitalize()} the managed service NAME."
    return services.command(action)(command)


for _action in ("start", "stop", "restart"):
    _action_command(_action)
