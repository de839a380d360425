"""
CLI command for the full-library download.

Thin wrapper over ``jfp.core.services.library_sync``.
"""

from __future__ import annotations

import json
import sys

import click

from jfp.ui.cli.common import load_config_or_exit


@click.command()
@click.option("--force", is_flag=True, help="Re-download everything instead of syncing changes.")
@click.option("--status", "show_status", is_flag=True, help="Show sync status without syncing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def sync(ctx: click.Context, force: bool, show_status: bool, as_json: bool) -> None:
    """Download your prompt library for offline use."""
    from jfp.core.errors import JfpError
    from jfp.core.services.library_sync import library_status, sync_library

    config = load_config_or_exit(ctx)

    if show_status:
        status = library_status(config)
        if as_json:
            click.echo(json.dumps(status, indent=2))
            return
        click.secho("📥 Library:", fg="cyan", bold=True)
        click.echo(f"   Last sync: {status['age']}")
        click.echo(f"   Prompts:   {status['promptCount']}")
        click.echo(f"   Path:      {status['libraryPath']}")
        if not status["authenticated"]:
            click.secho("   ⚠️  Not logged in (set JFP_TOKEN)", fg="yellow")
        return

    try:
        result = sync_library(config, force=force)
    except JfpError as e:
        if as_json:
            click.echo(json.dumps({"error": type(e).__name__, "message": str(e)}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    mode = "full" if force else "incremental"
    click.secho(f"✅ Library synced ({mode})", fg="green", bold=True)
    click.echo(f"   New/updated: {result.new_prompts}")
    click.echo(f"   Total:       {result.total_prompts}")
    click.echo(f"   Location:    {result.library_dir}")
