"""
CLI commands for configuration.

Usage::

    mailplane config check
    mailplane --config ./mailplane.yml config check --json
"""

from __future__ import annotations

import json
import sys

import click

from mailplane.ui.cli.common import EXIT_REJECTED


@click.group()
def config() -> None:
    """Configuration — validate mailplane.yml."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Load and validate the settings file."""
    from mailplane.core.config.loader import ConfigError, find_config_file, load_settings

    path, _ = find_config_file(ctx.obj.get("config_path"))
    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        if as_json:
            click.echo(json.dumps({"valid": False, "error": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(EXIT_REJECTED)

    if as_json:
        click.echo(json.dumps({
            "valid": True,
            "path": str(path) if path else None,
            "settings": settings.model_dump(mode="json", exclude={"admin_token"}),
            "adminTokenSet": bool(settings.admin_token),
        }, indent=2))
        return

    click.secho(f"✅ Configuration valid ({path or 'defaults'})", fg="green")
    click.echo(f"   Lock dir:  {settings.lock_dir}")
    click.echo(f"   State dir: {settings.state_dir}")
    if not settings.admin_token:
        click.secho("   ⚠️ admin_token is empty: the web API will refuse every change", fg="yellow")
