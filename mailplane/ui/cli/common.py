"""
Shared helpers for CLI commands: context loading and error exits.

Exit codes:
    0  success
    1  a phase failed (rollback already ran)
    2  rejected before any change (validation, conflict, config)
"""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click

from mailplane.core.config.loader import ConfigError, load_settings
from mailplane.core.context import ProvisioningContext, build_context
from mailplane.core.errors import PhaseError, ProvisioningError

EXIT_FAILED = 1
EXIT_REJECTED = 2


def load_context(ctx: click.Context) -> ProvisioningContext:
    """Build the provisioning context once per invocation.

    Tests may pre-seed ``ctx.obj["runner"]`` or ``ctx.obj["settings"]``.
    """
    if "context" in ctx.obj:
        return ctx.obj["context"]
    settings = ctx.obj.get("settings")
    if settings is None:
        try:
            settings = load_settings(ctx.obj.get("config_path"))
        except ConfigError as e:
            click.secho(f"❌ {e}", fg="red", err=True)
            sys.exit(EXIT_REJECTED)
    ctx.obj["context"] = build_context(settings, ctx.obj.get("runner"))
    return ctx.obj["context"]


def fail(error: ProvisioningError, as_json: bool) -> NoReturn:
    """Report a provisioning error and exit with its code."""
    if as_json:
        click.echo(json.dumps(error.to_dict(), indent=2))
    else:
        click.secho(f"❌ {error.message}", fg="red", err=True)
        if isinstance(error, PhaseError):
            if error.phase:
                click.echo(f"   Phase: {error.phase}", err=True)
            if error.detail:
                click.echo(f"   {error.detail}", err=True)
            for name in error.rolled_back:
                click.echo(f"   ↩ rolled back: {name}", err=True)
    sys.exit(EXIT_FAILED if isinstance(error, PhaseError) else EXIT_REJECTED)
