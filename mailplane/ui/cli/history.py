"""
CLI command for the provisioning audit ledger.

Usage::

    mailplane history
    mailplane history --kind webmail_setup -n 5 --json
"""

from __future__ import annotations

import json

import click

from mailplane.core.models.provisioning import SessionKind
from mailplane.ui.cli.common import load_context


@click.command()
@click.option("-n", "limit", default=20, type=click.IntRange(min=1), help="How many entries.")
@click.option(
    "--kind",
    type=click.Choice([k.value for k in SessionKind]),
    default=None,
    help="Only sessions of this kind.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, limit: int, kind: str | None, as_json: bool) -> None:
    """Show recent provisioning sessions, newest last."""
    audit = load_context(ctx).audit
    entries = audit.read_recent(limit, kind=kind)

    if as_json:
        click.echo(json.dumps({
            "total": audit.entry_count(),
            "entries": [e.model_dump(mode="json") for e in entries],
        }, indent=2))
        return

    if not entries:
        click.echo("   No sessions recorded")
        return
    for entry in entries:
        colour = "green" if entry.status == "completed" else "red"
        click.secho(f"   {entry.summary()}", fg=colour)
        for warning in entry.warnings:
            click.secho(f"      ⚠ {warning}", fg="yellow")
