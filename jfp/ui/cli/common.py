"""
Shared helpers for the CLI command modules.
"""

from __future__ import annotations

import sys

import click

from jfp.core.config.loader import load_config
from jfp.core.errors import ConfigError
from jfp.core.models.config import JfpConfig
from jfp.core.services.skill_sync import Outcome, SyncReport

_OUTCOME_STYLE = {
    Outcome.INSTALLED: ("✅", "green"),
    Outcome.UPDATED: ("🔄", "green"),
    Outcome.UNCHANGED: ("•", None),
    Outcome.SKIPPED: ("⏭️ ", "yellow"),
    Outcome.FAILED: ("❌", "red"),
    Outcome.REMOVED: ("🗑️ ", "cyan"),
}


def load_config_or_exit(ctx: click.Context) -> JfpConfig:
    """Load configuration, printing the error and exiting 1 if invalid."""
    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def echo_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        click.secho(f"⚠️  {warning}", fg="yellow", err=True)


def echo_report(report: SyncReport, show_diff: bool = False, quiet: bool = False) -> None:
    """Human-readable rendering of one root's batch report."""
    prefix = "[dry-run] " if report.dry_run else ""
    if not quiet:
        click.secho(f"\n📁 {prefix}{report.action} → {report.root}", fg="cyan", bold=True)

    if not report.results and not quiet:
        click.echo("   Nothing to do.")

    for result in report.results:
        if quiet and result.outcome == Outcome.UNCHANGED:
            continue
        icon, color = _OUTCOME_STYLE[result.outcome]
        version = f" v{result.version}" if result.version else ""
        reason = f" ({result.reason})" if result.reason else ""
        click.secho(f"   {icon} {result.id}{version}: {result.outcome.value}{reason}", fg=color)
        if show_diff and result.diff:
            for line in result.diff.splitlines():
                click.echo(f"      {line}")

    if not quiet:
        summary = ", ".join(f"{n} {name}" for name, n in report.counts.items() if n)
        click.echo(f"   {summary or 'no entries'}")

    if report.manifest_error:
        click.secho(f"   ❌ {report.manifest_error}", fg="red")
