"""
jfp — CLI entrypoint.

Usage:
    jfp --help
    jfp install idea-wizard
    jfp update --both --dry-run
    jfp config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
import yaml

from jfp import __version__
from jfp.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="jfp")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to config.yml (default: $JFP_CONFIG_DIR or ~/.config/jfp).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """jfp — install prompts from the catalog as Claude Code skills."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(
        level=resolve_level(debug=debug, verbose=verbose, quiet=quiet),
        log_file=os.environ.get("JFP_LOG_FILE"),
        log_file_level=os.environ.get("JFP_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
        secrets=[os.environ.get("JFP_TOKEN", "")],
    )


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Print the effective configuration (file + env overrides)."""
    from jfp.ui.cli.common import load_config_or_exit

    cfg = load_config_or_exit(ctx)
    data = cfg.to_display_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip())
    if cfg.token:
        click.secho("# token: set (JFP_TOKEN)", fg="white", dim=True)


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate config.yml."""
    from jfp.core.config.loader import check_config

    result = check_config(ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        assert result.config is not None  # guaranteed when valid
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        click.echo(f"   File:     {result.path}")
        click.echo(f"   Registry: {result.config.registry.url}")
        click.echo(f"   Skills:   {result.config.skills.personal_dir}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


@config.command("path")
@click.pass_context
def config_path_cmd(ctx: click.Context) -> None:
    """Print the config file location."""
    from jfp.core.config.loader import default_config_path

    click.echo(str(ctx.obj.get("config_path") or default_config_path()))


# ── Sub-command registration ────────────────────────────────────

from jfp.ui.cli.library import sync  # noqa: E402
from jfp.ui.cli.registry import registry  # noqa: E402
from jfp.ui.cli.skills import install, installed, uninstall, update  # noqa: E402

cli.add_command(install)
cli.add_command(update)
cli.add_command(uninstall)
cli.add_command(installed)
cli.add_command(registry)
cli.add_command(sync)


if __name__ == "__main__":
    cli()
