"""
CLI commands for session locks.

Usage::

    mailplane locks list
    mailplane locks release webmail-setup
"""

from __future__ import annotations

import json
import time

import click

from mailplane.core.errors import ProvisioningError
from mailplane.ui.cli.common import fail, load_context


@click.group()
def locks() -> None:
    """Locks — inspect and clear provisioning locks."""


@locks.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_locks(ctx: click.Context, as_json: bool) -> None:
    """Show every held lock."""
    manager = load_context(ctx).locks
    now_ms = int(time.time() * 1000)
    records = [
        {
            "name": r.path.rsplit("/", 1)[-1],
            "pid": r.pid,
            "age_seconds": round(r.age_seconds(now_ms), 1),
            "stale": manager.is_stale(r),
        }
        for r in manager.list_locks()
    ]

    if as_json:
        click.echo(json.dumps({"locks": records}, indent=2))
        return

    if not records:
        click.echo("   No locks held")
        return
    for r in records:
        marker = " (stale)" if r["stale"] else ""
        click.echo(f"   🔒 {r['name']}  pid={r['pid']}  age={r['age_seconds']}s{marker}")


@locks.command("release")
@click.argument("name")
@click.pass_context
def release(ctx: click.Context, name: str) -> None:
    """Remove lock NAME, e.g. after a crashed session."""
    manager = load_context(ctx).locks
    try:
        if manager.inspect(name) is None:
            click.echo(f"   Lock {name} is not held")
            return
        manager.release(name)
    except ProvisioningError as e:
        fail(e, as_json=False)
    click.secho(f"   Released {name}", fg="green")
