"""
Mailplane — CLI entrypoint.

Usage:
    mailplane --help
    mailplane webmail setup mail.example.com admin@example.com
    mailplane services enable postfix dovecot
    mailplane dns forward
    mailplane history
    mailplane web --port 8000
"""

from __future__ import annotations

from pathlib import Path

import click

from mailplane import __version__
from mailplane.core.observability.logging_config import setup_logging_from_env


@click.group()
@click.version_option(version=__version__, prog_name="mailplane")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to mailplane.yml (default: MAILPLANE_CONFIG or /etc/mailplane).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Mailplane — provision the services of a self-hosted mail server."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = None

    setup_logging_from_env(level=level, quiet_third_party=not debug)


@cli.command()
@click.option("--host", default="127.0.0.1", help="Bind address.")
@click.option("--port", "-p", default=8000, type=int, help="Port number.")
@click.pass_context
def web(ctx: click.Context, host: str, port: int) -> None:
    """Start the dashboard API server."""
    from mailplane.ui.cli.common import load_context
    from mailplane.ui.web.server import create_app, run_server

    pctx = load_context(ctx)
    app = create_app(settings=pctx.settings, runner=pctx.runner)
    debug = ctx.obj.get("debug", False)

    click.echo()
    click.secho("✉️  Mailplane — dashboard API", bold=True)
    click.echo(f"   Listening: http://{host}:{port}/api")
    click.echo(f"   Locks:     {pctx.settings.lock_dir}")
    if not pctx.settings.admin_token:
        click.secho("   admin_token is empty: mutating endpoints will return 401", fg="yellow")
    if debug:
        click.secho("   Logging: DEBUG (all output)", fg="yellow")
    click.echo()

    run_server(app, host=host, port=port, debug=debug)


# ── Register sub-command groups from mailplane/ui/cli/ ────────────

from mailplane.ui.cli.config import config  # noqa: E402
from mailplane.ui.cli.dns import dns  # noqa: E402
from mailplane.ui.cli.history import history  # noqa: E402
from mailplane.ui.cli.locks import locks  # noqa: E402
from mailplane.ui.cli.services import services  # noqa: E402
from mailplane.ui.cli.webmail import webmail  # noqa: E402

cli.add_command(config)
cli.add_command(webmail)
cli.add_command(services)
cli.add_command(dns)
cli.add_command(locks)
cli.add_command(history)


if __name__ == "__main__":
    cli()
