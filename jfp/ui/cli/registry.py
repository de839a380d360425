"""
CLI commands for the catalog cache — status and refresh.

Thin wrappers over ``jfp.core.services.registry_loader``.
"""

from __future__ import annotations

import json

import click

from jfp.ui.cli.common import echo_warnings, load_config_or_exit


@click.group()
def registry() -> None:
    """Registry — catalog cache status and refresh."""


@registry.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the cached catalog, its age and staleness."""
    from jfp.core.services.registry_loader import registry_status

    result = registry_status(load_config_or_exit(ctx))

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho("📚 Registry:", fg="cyan", bold=True)
    click.echo(f"   URL:   {result['url']}")
    click.echo(f"   Cache: {result['cache_path']}")
    if not result["cached"]:
        click.secho("   ⚠️  No cached catalog — next command will fetch", fg="yellow")
    else:
        meta = result["meta"] or {}
        click.echo(f"   Version: {meta.get('version', 'unknown')}")
        click.echo(f"   Prompts: {result['cached_prompts']}")
        if meta.get("etag"):
            click.echo(f"   ETag:    {meta['etag']}")
        if result["age_seconds"] is not None:
            click.echo(f"   Age:     {result['age_seconds']}s (ttl {result['cache_ttl']}s)")
        if result["stale"]:
            click.secho("   ⏳ Stale", fg="yellow")
        else:
            click.secho("   ✅ Fresh", fg="green")
    if result["local_prompt_files"]:
        click.echo(f"   Local prompt files: {result['local_prompt_files']}")
    click.echo()


@registry.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def refresh(ctx: click.Context, as_json: bool) -> None:
    """Fetch the catalog now (conditional on the cached ETag)."""
    from jfp.core.services.registry_loader import refresh_registry

    loaded = refresh_registry(load_config_or_exit(ctx))

    if as_json:
        click.echo(json.dumps(loaded.to_dict(), indent=2))
        return

    echo_warnings(loaded.warnings)
    source_label = {
        "remote": "downloaded",
        "cache": "cache is current" if not loaded.warnings else "kept cached copy",
        "bundled": "using bundled snapshot",
    }.get(loaded.source, loaded.source)
    color = "green" if not loaded.warnings else "yellow"
    click.secho(
        f"🔄 Registry {loaded.catalog.version}: {len(loaded.prompts)} prompts, "
        f"{len(loaded.bundles)} bundles ({source_label})",
        fg=color,
    )
