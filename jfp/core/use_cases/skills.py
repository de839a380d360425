"""
Skills use cases — install, update, uninstall and list installed skills.

The full vertical slice from CLI intent to files on disk: load config,
load the registry, select entries, resolve install roots, run the
synchronizer, and collect per-root reports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from jfp.core.config.loader import load_config
from jfp.core.errors import ConfigError
from jfp.core.models.catalog import CatalogEntry
from jfp.core.models.config import JfpConfig
from jfp.core.persistence.manifest import check_skill_modification, read_manifest
from jfp.core.services.registry_loader import LoadedRegistry, RegistryLoader
from jfp.core.services.safe_paths import is_safe_id
from jfp.core.services.skill_sync import SkillSynchronizer, SyncReport, uninstall_skills

logger = logging.getLogger(__name__)

SCOPE_PERSONAL = "personal"
SCOPE_PROJECT = "project"


@dataclass
class SkillsResult:
    """Result of an install/update/uninstall run across one or more roots."""

    action: str
    reports: list[SyncReport] = field(default_factory=list)
    registry_source: str | None = None
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and all(r.ok for r in self.reports)

    @property
    def has_protected_skips(self) -> bool:
        return any(r.has_protected_skips for r in self.reports)

    @property
    def counts(self) -> dict[str, int]:
        totals: dict[str, int] = {}
        for report in self.reports:
            for key, value in report.counts.items():
                totals[key] = totals.get(key, 0) + value
        return totals

    def to_dict(self) -> dict:
        result: dict = {"action": self.action}
        if self.error:
            result["error"] = self.error
            return result
        result["ok"] = self.ok
        result["registry_source"] = self.registry_source
        result["counts"] = self.counts
        result["roots"] = [r.to_dict() for r in self.reports]
        if self.warnings:
            result["warnings"] = self.warnings
        return result


def _scopes(project: bool, personal: bool, both: bool, prefer_project: bool) -> list[str]:
    if both:
        return [SCOPE_PERSONAL, SCOPE_PROJECT]
    if project:
        return [SCOPE_PROJECT]
    if personal:
        return [SCOPE_PERSONAL]
    return [SCOPE_PROJECT if prefer_project else SCOPE_PERSONAL]


def _load(config: JfpConfig | None, config_path: Path | None) -> JfpConfig:
    return config if config is not None else load_config(config_path)


def select_entries(
    loaded: LoadedRegistry,
    ids: list[str],
    install_all: bool = False,
    bundle_ids: list[str] | None = None,
) -> tuple[list[CatalogEntry], list[str]]:
    """Resolve the user's selection against the catalog.

    Returns:
        (entries found, requested ids that don't exist)
    """
    catalog = loaded.catalog
    selected: list[CatalogEntry] = []
    missing: list[str] = []
    seen: set[str] = set()

    def add(entry: CatalogEntry) -> None:
        key = f"{entry.kind.value}:{entry.id}"
        if key not in seen:
            seen.add(key)
            selected.append(entry)

    if install_all:
        for prompt in catalog.prompts:
            add(prompt)

    for entry_id in ids:
        prompt = catalog.get_prompt(entry_id)
        if prompt is not None:
            add(prompt)
            continue
        bundle = catalog.get_bundle(entry_id)
        if bundle is not None:
            add(bundle)
        else:
            missing.append(entry_id)

    for bundle_id in bundle_ids or []:
        bundle = catalog.get_bundle(bundle_id)
        if bundle is None:
            missing.append(bundle_id)
        else:
            add(bundle)

    return selected, missing


def run_install(
    ids: list[str],
    install_all: bool = False,
    bundle_ids: list[str] | None = None,
    project: bool = False,
    force: bool = False,
    dry_run: bool = False,
    config: JfpConfig | None = None,
    config_path: Path | None = None,
    loader: RegistryLoader | None = None,
    cwd: Path | None = None,
) -> SkillsResult:
    """Install catalog entries as skills in the personal or project root."""
    result = SkillsResult(action="install")

    try:
        cfg = _load(config, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if not ids and not install_all and not bundle_ids:
        result.error = "Nothing to install: pass prompt ids, --all, or --bundle."
        return result

    loader = loader or RegistryLoader(cfg)
    loaded = loader.load()
    result.registry_source = loaded.source
    result.warnings.extend(loaded.warnings)

    entries, missing = select_entries(loaded, ids, install_all, bundle_ids)
    scope = _scopes(project, False, False, cfg.skills.prefer_project)[0]
    root = cfg.skills_root(project=scope == SCOPE_PROJECT, cwd=cwd)

    sync = SkillSynchronizer(root, loaded.catalog, force=force, dry_run=dry_run)
    result.reports.append(sync.install(entries, missing_ids=missing))
    return result


def run_update(
    project: bool = False,
    personal: bool = False,
    both: bool = False,
    force: bool = False,
    dry_run: bool = False,
    with_diff: bool = False,
    config: JfpConfig | None = None,
    config_path: Path | None = None,
    loader: RegistryLoader | None = None,
    cwd: Path | None = None,
) -> SkillsResult:
    """Update installed skills in one or both roots."""
    result = SkillsResult(action="update")

    try:
        cfg = _load(config, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    loader = loader or RegistryLoader(cfg)
    loaded = loader.load()
    result.registry_source = loaded.source
    result.warnings.extend(loaded.warnings)

    for scope in _scopes(project, personal, both, cfg.skills.prefer_project):
        root = cfg.skills_root(project=scope == SCOPE_PROJECT, cwd=cwd)
        sync = SkillSynchronizer(
            root, loaded.catalog, force=force, dry_run=dry_run, with_diff=with_diff or dry_run
        )
        result.reports.append(sync.update())

    return result


def run_uninstall(
    ids: list[str],
    project: bool = False,
    force: bool = False,
    dry_run: bool = False,
    config: JfpConfig | None = None,
    config_path: Path | None = None,
    cwd: Path | None = None,
) -> SkillsResult:
    """Remove installed skills.  Doesn't need the registry."""
    result = SkillsResult(action="uninstall")

    try:
        cfg = _load(config, config_path)
    except ConfigError as e:
        result.error = str(e)
        return result

    if not ids:
        result.error = "Nothing to uninstall: pass one or more skill ids."
        return result

    scope = _scopes(project, False, False, cfg.skills.prefer_project)[0]
    root = cfg.skills_root(project=scope == SCOPE_PROJECT, cwd=cwd)

    result.reports.append(uninstall_skills(root, ids, force=force, dry_run=dry_run))
    return result


@dataclass
class InstalledResult:
    """Manifest contents of one install root."""

    scope: str
    root: Path
    entries: list[dict] = field(default_factory=list)
    manifest_found: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {
            "scope": self.scope,
            "root": str(self.root),
            "manifest_found": self.manifest_found,
            "entries": self.entries,
        }


def list_installed(
    project: bool = False,
    config: JfpConfig | None = None,
    config_path: Path | None = None,
    cwd: Path | None = None,
) -> InstalledResult:
    """List what the manifest says is installed, with on-disk presence."""
    scope = SCOPE_PROJECT if project else SCOPE_PERSONAL
    try:
        cfg = _load(config, config_path)
    except ConfigError as e:
        return InstalledResult(scope=scope, root=Path(), error=str(e))

    root = cfg.skills_root(project=project, cwd=cwd)
    result = InstalledResult(scope=scope, root=root)
    manifest = read_manifest(root)
    if manifest is None:
        return result

    result.manifest_found = True
    for entry in manifest.entries:
        row = entry.to_wire()
        if is_safe_id(entry.id):
            try:
                mod = check_skill_modification(root, entry.id, manifest)
            except OSError as e:
                row["onDisk"] = True
                row["error"] = str(e)
            else:
                row["onDisk"] = mod.exists_on_disk
                row["modified"] = mod.was_modified
        else:
            row["onDisk"] = False
            row["modified"] = False
            row["unsafe"] = True
        result.entries.append(row)
    return result
