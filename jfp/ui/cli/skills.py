"""
CLI commands for skill installation — install, update, uninstall, installed.

Thin wrappers over ``jfp.core.use_cases.skills``.
"""

from __future__ import annotations

import json
import sys

import click

from jfp.ui.cli.common import echo_report, echo_warnings, load_config_or_exit


def _finish(ctx: click.Context, result, as_json: bool, strict: bool, show_diff: bool, loader) -> None:
    """Print a SkillsResult, wait briefly for any refresh, and exit."""
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.error:
        click.secho(f"❌ {result.error}", fg="red")
    else:
        quiet = ctx.obj.get("quiet", False)
        echo_warnings(result.warnings)
        for report in result.reports:
            echo_report(report, show_diff=show_diff, quiet=quiet)
        if strict and result.has_protected_skips:
            click.secho("\n❌ Protected files were skipped (--strict)", fg="red")
        click.echo()

    if loader is not None:
        loader.join_refresh(timeout=loader.refresh_timeout)

    if not result.ok or (strict and result.has_protected_skips):
        sys.exit(1)


@click.command()
@click.argument("ids", nargs=-1)
@click.option("--all", "install_all", is_flag=True, help="Install every prompt in the catalog.")
@click.option("--bundle", "bundle_ids", multiple=True, help="Install a bundle (repeatable).")
@click.option("--project", is_flag=True, help="Install into the project root instead of personal.")
@click.option("--force", is_flag=True, help="Overwrite files that were edited or not installed by jfp.")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--strict", is_flag=True, help="Exit 1 if any file was skipped to protect edits.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    ids: tuple[str, ...],
    install_all: bool,
    bundle_ids: tuple[str, ...],
    project: bool,
    force: bool,
    dry_run: bool,
    strict: bool,
    as_json: bool,
) -> None:
    """Install prompts or bundles as Claude Code skills."""
    from jfp.core.services.registry_loader import RegistryLoader
    from jfp.core.use_cases.skills import run_install

    config = load_config_or_exit(ctx)
    loader = RegistryLoader(config)
    result = run_install(
        list(ids),
        install_all=install_all,
        bundle_ids=list(bundle_ids),
        project=project,
        force=force,
        dry_run=dry_run,
        config=config,
        loader=loader,
    )
    _finish(ctx, result, as_json, strict, show_diff=dry_run, loader=loader)


@click.command()
@click.option("--project", "scope", flag_value="project", help="Update the project root only.")
@click.option("--personal", "scope", flag_value="personal", help="Update the personal root only.")
@click.option("--both", "scope", flag_value="both", help="Update both roots.")
@click.option("--force", is_flag=True, help="Overwrite edited or foreign files.")
@click.option("--dry-run", is_flag=True, help="Show what would change without writing.")
@click.option("--diff", "with_diff", is_flag=True, help="Show a diff for each updated skill.")
@click.option("--strict", is_flag=True, help="Exit 1 if any file was skipped to protect edits.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def update(
    ctx: click.Context,
    scope: str | None,
    force: bool,
    dry_run: bool,
    with_diff: bool,
    strict: bool,
    as_json: bool,
) -> None:
    """Update installed skills to the latest catalog content."""
    from jfp.core.services.registry_loader import RegistryLoader
    from jfp.core.use_cases.skills import run_update

    config = load_config_or_exit(ctx)
    loader = RegistryLoader(config)
    result = run_update(
        project=scope == "project",
        personal=scope == "personal",
        both=scope == "both",
        force=force,
        dry_run=dry_run,
        with_diff=with_diff,
        config=config,
        loader=loader,
    )
    _finish(ctx, result, as_json, strict, show_diff=with_diff or dry_run, loader=loader)


@click.command()
@click.argument("ids", nargs=-1, required=True)
@click.option("--project", is_flag=True, help="Uninstall from the project root.")
@click.option("--force", is_flag=True, help="Remove even if the file was edited.")
@click.option("--dry-run", is_flag=True, help="Show what would be removed without deleting.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(
    ctx: click.Context,
    ids: tuple[str, ...],
    project: bool,
    force: bool,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Remove installed skills."""
    from jfp.core.use_cases.skills import run_uninstall

    config = load_config_or_exit(ctx)
    result = run_uninstall(list(ids), project=project, force=force, dry_run=dry_run, config=config)
    _finish(ctx, result, as_json, strict=False, show_diff=False, loader=None)


@click.command()
@click.option("--project", is_flag=True, help="List the project root instead of personal.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def installed(ctx: click.Context, project: bool, as_json: bool) -> None:
    """List skills recorded in the install manifest."""
    from jfp.core.use_cases.skills import list_installed

    config = load_config_or_exit(ctx)
    result = list_installed(project=project, config=config)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.secho(f"\n📦 Installed skills ({result.scope}) → {result.root}", fg="cyan", bold=True)
    if not result.manifest_found:
        click.echo("   No manifest found — nothing installed by jfp here.")
        click.echo()
        return

    if not result.entries:
        click.echo("   Manifest is empty.")
    for row in result.entries:
        if row.get("unsafe"):
            marker = click.style("unsafe id", fg="red")
        elif row.get("error"):
            marker = click.style(row["error"], fg="red")
        elif not row.get("onDisk"):
            marker = click.style("missing on disk", fg="yellow")
        elif row.get("modified"):
            marker = click.style("modified", fg="yellow")
        else:
            marker = click.style("ok", fg="green")
        click.echo(f"   • {row['id']} [{row['kind']}] v{row['version']}  {marker}")
    click.echo()
