"""
CLI commands for Roundcube webmail.

Thin wrappers over ``mailplane.core.use_cases.webmail``.

Usage::

    mailplane webmail setup mail.example.com admin@example.com
    mailplane webmail setup mail.example.com admin@example.com --reconfigure
    mailplane webmail status --json
"""

from __future__ import annotations

import json

import click

from mailplane.core.errors import ProvisioningError
from mailplane.ui.cli.common import fail, load_context


@click.group()
def webmail() -> None:
    """Webmail — install and publish Roundcube."""


@webmail.command("setup")
@click.argument("domain")
@click.argument("admin_email")
@click.option("--reconfigure", is_flag=True, help="Rewrite the web server config on a finished install.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, domain: str, admin_email: str, reconfigure: bool, as_json: bool) -> None:
    """Install Roundcube and serve it at https://DOMAIN/webmail."""
    from mailplane.core.use_cases.webmail import setup_webmail

    pctx = load_context(ctx)
    try:
        result = setup_webmail(pctx, domain, admin_email, reconfigure=reconfigure)
    except ProvisioningError as e:
        fail(e, as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    verb = "reconfigured" if result.reconfigured else "installed"
    click.secho(f"✅ Webmail {verb} ({result.web_server})", fg="green", bold=True)
    click.echo(f"   URL: {result.webmail_url}")
    for line in result.dns_instructions:
        click.echo(f"   • {line}")


@webmail.command("status")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the Roundcube installation status."""
    from mailplane.core.use_cases.webmail import webmail_status

    result = webmail_status(load_context(ctx))

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    icon = "✅" if result["installed"] else "⚠️"
    click.secho(f"{icon} Webmail: {result['status']}", bold=True)
    click.echo(f"   Web server: {result['webServer']}")
    if result["version"]:
        click.echo(f"   Version:    {result['version']}")
    if result["url"]:
        click.echo(f"   URL:        {result['url']}")
    if result["needsReconfigure"]:
        click.secho("   Run 'mailplane webmail setup DOMAIN EMAIL --reconfigure'", fg="yellow")
