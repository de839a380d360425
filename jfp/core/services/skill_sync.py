"""
Skill synchronizer — materialize catalog entries as SKILL.md files.

One ``SkillSynchronizer`` owns one install root and its manifest for the
duration of a batch.  Each entry is decided independently and resolves
to exactly one outcome:

    installed   new file written
    updated     tracked file overwritten with newer content
    unchanged   nothing to do
    skipped     deliberately left alone (reason says why)
    failed      unsafe id or I/O error (reason says what)
    removed     uninstalled

Update decision order for a tracked entry:

    entry gone from catalog           → skipped  "no longer in registry"
    hash(new) == manifest hash        → unchanged
    file missing                      → skipped  "not found on disk"
    no generated marker (no --force)  → skipped  "not generated by this tool"
    disk hash != manifest (no --force)→ skipped  "user modifications detected"
    otherwise                         → updated

The manifest is changed in memory per entry and persisted once, after
the whole batch.  Dry-run makes the same decisions without writing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path

from jfp import __version__
from jfp.core.errors import UnsafePathError
from jfp.core.models.catalog import Catalog, CatalogEntry, EntryKind
from jfp.core.models.manifest import Manifest, ManifestEntry
from jfp.core.persistence.json_file import write_text_atomic
from jfp.core.persistence.manifest import (
    check_skill_modification,
    create_empty_manifest,
    is_generated_by_tool,
    read_manifest,
    remove_manifest_entry,
    stamp_manifest,
    upsert_manifest_entry,
    write_manifest,
)
from jfp.core.services.hashing import compute_hash, hash_file
from jfp.core.services.safe_paths import is_safe_id, resolve_skill_path
from jfp.core.services.skill_render import render_entry, unified_diff

logger = logging.getLogger(__name__)

REASON_NOT_IN_REGISTRY = "no longer in registry"
REASON_NOT_FOUND = "not found on disk"
REASON_NOT_GENERATED = "not generated by this tool"
REASON_MODIFIED = "user modifications detected"
REASON_UNTRACKED = "exists and is not managed by this tool"
REASON_NOT_INSTALLED = "not installed"
REASON_UNKNOWN_ID = "not found in registry"

PROTECTED_REASONS = frozenset({REASON_NOT_GENERATED, REASON_MODIFIED, REASON_UNTRACKED})


class Outcome(StrEnum):
    """Per-entry outcome of a sync batch."""

    INSTALLED = "installed"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"
    REMOVED = "removed"


@dataclass
class EntryResult:
    """What happened to one entry."""

    id: str
    kind: str
    outcome: Outcome
    reason: str | None = None
    version: str | None = None
    path: Path | None = None
    diff: str | None = None

    @property
    def protected(self) -> bool:
        """Skipped to protect a file the user owns or edited."""
        return self.outcome == Outcome.SKIPPED and self.reason in PROTECTED_REASONS

    def to_dict(self) -> dict:
        d: dict = {"id": self.id, "kind": self.kind, "outcome": self.outcome.value}
        if self.reason:
            d["reason"] = self.reason
        if self.version:
            d["version"] = self.version
        if self.path:
            d["path"] = str(self.path)
        if self.diff:
            d["diff"] = self.diff
        return d


@dataclass
class SyncReport:
    """Batch result for one install root."""

    root: Path
    action: str
    dry_run: bool = False
    results: list[EntryResult] = field(default_factory=list)
    manifest_written: bool = False
    manifest_error: str | None = None

    def add(self, result: EntryResult) -> EntryResult:
        self.results.append(result)
        log = logger.warning if result.outcome == Outcome.FAILED else logger.info
        log("%s %s: %s%s", self.action, result.id, result.outcome.value,
            f" ({result.reason})" if result.reason else "")
        return result

    @property
    def counts(self) -> dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    @property
    def failed(self) -> int:
        return self.counts[Outcome.FAILED.value]

    @property
    def has_protected_skips(self) -> bool:
        return any(r.protected for r in self.results)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.manifest_error is None

    def to_dict(self) -> dict:
        return {
            "root": str(self.root),
            "action": self.action,
            "dry_run": self.dry_run,
            "counts": self.counts,
            "results": [r.to_dict() for r in self.results],
            "manifest_written": self.manifest_written,
            "manifest_error": self.manifest_error,
        }


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class SkillSynchronizer:
    """Install, update and uninstall skills under one root.

    Args:
        root: Install root (owns ``manifest.json`` and one dir per skill).
        catalog: The catalog to render from.
        force: Overwrite/remove files even if edited or not ours.
        dry_run: Decide everything, write nothing.
        with_diff: Attach a unified diff to updated entries.
    """

    def __init__(
        self,
        root: Path,
        catalog: Catalog,
        force: bool = False,
        dry_run: bool = False,
        with_diff: bool = False,
        tool_version: str = __version__,
    ):
        self.root = root
        self.catalog = catalog
        self.force = force
        self.dry_run = dry_run
        self.with_diff = with_diff
        self.tool_version = tool_version
        self.manifest: Manifest = read_manifest(root) or create_empty_manifest(tool_version)
        self._dirty = False

    # ── Batches ─────────────────────────────────────────────────

    def install(
        self,
        entries: list[CatalogEntry],
        missing_ids: list[str] | None = None,
    ) -> SyncReport:
        """Install the given entries; ``missing_ids`` are reported as failed.

        Skill paths and manifest entries are keyed by id alone, so a later
        entry whose id was already claimed in this batch (a prompt and a
        bundle sharing an id) fails instead of overwriting the first.
        """
        report = SyncReport(root=self.root, action="install", dry_run=self.dry_run)
        for entry_id in missing_ids or []:
            report.add(EntryResult(id=entry_id, kind="unknown",
                                   outcome=Outcome.FAILED, reason=REASON_UNKNOWN_ID))
        claimed: dict[str, CatalogEntry] = {}
        for entry in entries:
            first = claimed.get(entry.id)
            if first is not None:
                if first.kind != entry.kind:
                    report.add(EntryResult(
                        id=entry.id, kind=entry.kind.value, outcome=Outcome.FAILED,
                        reason=f"id conflicts with {first.kind.value} {entry.id!r}",
                    ))
                continue
            claimed[entry.id] = entry
            report.add(self._guard(entry.id, entry.kind, lambda e=entry: self._install_one(e)))
        return self._finish(report)

    def update(self) -> SyncReport:
        """Bring every tracked entry up to date, in manifest order."""
        report = SyncReport(root=self.root, action="update", dry_run=self.dry_run)
        for tracked in list(self.manifest.entries):
            report.add(self._guard(tracked.id, tracked.kind, lambda t=tracked: self._update_one(t)))
        return self._finish(report)

    def uninstall(self, entry_ids: list[str]) -> SyncReport:
        """Remove the given skills and their manifest entries."""
        report = SyncReport(root=self.root, action="uninstall", dry_run=self.dry_run)
        for entry_id in entry_ids:
            tracked = self.manifest.get(entry_id) if isinstance(entry_id, str) else None
            kind = tracked.kind.value if tracked else "unknown"
            report.add(self._guard(entry_id, kind, lambda i=entry_id: self._uninstall_one(i)))
        return self._finish(report)

    # ── Per-entry decisions ─────────────────────────────────────

    def _guard(self, entry_id: str, kind: str, decide) -> EntryResult:
        """Run one decision; unsafe ids and I/O errors become ``failed``."""
        if not is_safe_id(entry_id):
            return EntryResult(id=str(entry_id), kind=str(kind), outcome=Outcome.FAILED,
                               reason=f"unsafe id: {entry_id!r}")
        try:
            return decide()
        except UnsafePathError as e:
            return EntryResult(id=entry_id, kind=str(kind), outcome=Outcome.FAILED, reason=str(e))
        except OSError as e:
            logger.debug("I/O failure on %s", entry_id, exc_info=True)
            return EntryResult(id=entry_id, kind=str(kind), outcome=Outcome.FAILED,
                               reason=f"{type(e).__name__}: {e}")

    def _install_one(self, entry: CatalogEntry) -> EntryResult:
        path = resolve_skill_path(self.root, entry.id)
        content = render_entry(entry, self.catalog)
        new_hash = compute_hash(content)
        tracked = self.manifest.get(entry.id)

        if not path.is_file():
            self._write(path, content)
            self._record(entry, new_hash)
            reason = "reinstalled missing file" if tracked else None
            return self._result(entry, Outcome.INSTALLED, path, reason=reason)

        if tracked is None:
            if hash_file(path) == new_hash:
                self._record(entry, new_hash)
                return self._result(entry, Outcome.UNCHANGED, path,
                                    reason="already present, now tracked")
            if not self.force:
                return self._result(entry, Outcome.SKIPPED, path, reason=REASON_UNTRACKED)
            diff = self._diff(path, content, entry.id)
            self._write(path, content)
            self._record(entry, new_hash)
            return self._result(entry, Outcome.INSTALLED, path,
                                reason="overwrote untracked file", diff=diff)

        return self._apply_update(entry, tracked, path, content, new_hash)

    def _update_one(self, tracked: ManifestEntry) -> EntryResult:
        entry = self.catalog.get(tracked.id, tracked.kind)
        if entry is None:
            return EntryResult(id=tracked.id, kind=tracked.kind.value, outcome=Outcome.SKIPPED,
                               reason=REASON_NOT_IN_REGISTRY, version=tracked.version)

        path = resolve_skill_path(self.root, entry.id)
        content = render_entry(entry, self.catalog)
        new_hash = compute_hash(content)

        if not path.is_file():
            if new_hash == tracked.hash:
                return self._result(entry, Outcome.UNCHANGED, path)
            return self._result(entry, Outcome.SKIPPED, path, reason=REASON_NOT_FOUND)

        return self._apply_update(entry, tracked, path, content, new_hash)

    def _apply_update(
        self,
        entry: CatalogEntry,
        tracked: ManifestEntry,
        path: Path,
        content: str,
        new_hash: str,
    ) -> EntryResult:
        """Overwrite-protection rules for a tracked file that exists on disk."""
        disk_hash = hash_file(path)

        if new_hash == tracked.hash and (not self.force or disk_hash == new_hash):
            return self._result(entry, Outcome.UNCHANGED, path)

        if disk_hash == new_hash:
            # Disk already matches the registry; only the ledger is behind.
            self._record(entry, new_hash)
            return self._result(entry, Outcome.UPDATED, path, reason="manifest refreshed")

        if not self.force:
            if not is_generated_by_tool(path):
                return self._result(entry, Outcome.SKIPPED, path, reason=REASON_NOT_GENERATED)
            modification = check_skill_modification(self.root, entry.id, self.manifest)
            if modification.was_modified:
                return self._result(entry, Outcome.SKIPPED, path, reason=REASON_MODIFIED)

        diff = self._diff(path, content, entry.id)
        self._write(path, content)
        self._record(entry, new_hash)
        return self._result(entry, Outcome.UPDATED, path, diff=diff)

    def _uninstall_one(self, entry_id: str) -> EntryResult:
        tracked = self.manifest.get(entry_id)
        if tracked is None:
            return EntryResult(id=entry_id, kind="unknown", outcome=Outcome.SKIPPED,
                               reason=REASON_NOT_INSTALLED)

        path = resolve_skill_path(self.root, entry_id)
        kind = tracked.kind.value

        if not path.is_file():
            self._forget(entry_id)
            return EntryResult(id=entry_id, kind=kind, outcome=Outcome.REMOVED,
                               reason="already absent from disk", version=tracked.version,
                               path=path)

        modification = check_skill_modification(self.root, entry_id, self.manifest)
        if modification.was_modified and not self.force:
            return EntryResult(id=entry_id, kind=kind, outcome=Outcome.SKIPPED,
                               reason=REASON_MODIFIED, version=tracked.version, path=path)

        if not self.dry_run:
            path.unlink()
            try:
                path.parent.rmdir()
            except OSError:
                logger.debug("Leaving non-empty skill directory %s", path.parent)
        self._forget(entry_id)
        return EntryResult(id=entry_id, kind=kind, outcome=Outcome.REMOVED,
                           version=tracked.version, path=path)

    # ── Helpers ─────────────────────────────────────────────────

    def _result(
        self,
        entry: CatalogEntry,
        outcome: Outcome,
        path: Path,
        reason: str | None = None,
        diff: str | None = None,
    ) -> EntryResult:
        return EntryResult(
            id=entry.id,
            kind=entry.kind.value,
            outcome=outcome,
            reason=reason,
            version=entry.version,
            path=path,
            diff=diff,
        )

    def _diff(self, path: Path, content: str, label: str) -> str | None:
        if not self.with_diff:
            return None
        old = path.read_bytes().decode("utf-8", errors="replace") if path.is_file() else ""
        return unified_diff(old, content, label)

    def _write(self, path: Path, content: str) -> None:
        if self.dry_run:
            logger.debug("[dry-run] would write %s", path)
            return
        write_text_atomic(path, content)

    def _record(self, entry: CatalogEntry, content_hash: str) -> None:
        self.manifest = upsert_manifest_entry(
            self.manifest,
            ManifestEntry(
                id=entry.id,
                kind=EntryKind(entry.kind),
                version=entry.version,
                hash=content_hash,
                updated_at=_now_iso(),
            ),
        )
        self._dirty = True

    def _forget(self, entry_id: str) -> None:
        self.manifest = remove_manifest_entry(self.manifest, entry_id)
        self._dirty = True

    def _finish(self, report: SyncReport) -> SyncReport:
        """Persist the manifest once, after every per-entry write."""
        if self.dry_run or not self._dirty:
            return report

        stamped = stamp_manifest(self.manifest, self.tool_version)
        try:
            write_manifest(self.root, stamped)
        except OSError as e:
            report.manifest_error = f"files written but manifest may be out of sync: {e}"
            logger.error("Manifest write failed for %s: %s", self.root, e)
            return report

        self.manifest = stamped
        self._dirty = False
        report.manifest_written = True
        return report


# ── One-shot helpers ────────────────────────────────────────────


def install_skills(
    root: Path,
    catalog: Catalog,
    entries: list[CatalogEntry],
    missing_ids: list[str] | None = None,
    force: bool = False,
    dry_run: bool = False,
) -> SyncReport:
    return SkillSynchronizer(root, catalog, force=force, dry_run=dry_run).install(
        entries, missing_ids=missing_ids
    )


def update_skills(
    root: Path,
    catalog: Catalog,
    force: bool = False,
    dry_run: bool = False,
    with_diff: bool = False,
) -> SyncReport:
    return SkillSynchronizer(
        root, catalog, force=force, dry_run=dry_run, with_diff=with_diff
    ).update()


def uninstall_skills(
    root: Path,
    entry_ids: list[str],
    force: bool = False,
    dry_run: bool = False,
) -> SyncReport:
    return SkillSynchronizer(root, Catalog(), force=force, dry_run=dry_run).uninstall(entry_ids)
