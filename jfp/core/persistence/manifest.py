"""
Manifest store — read, update and persist the per-root skill ledger.

The manifest lives at ``<install-root>/manifest.json``.  Reads follow a
"corrupt manifest ⇒ None" policy: a missing, unparseable or
schema-invalid file is reported as None and callers fall back to
"nothing installed".  Writes are atomic.

Entry helpers are pure — they return a new Manifest and never touch
disk — so a batch can be decided in memory and persisted once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from jfp.core.models.manifest import Manifest, ManifestEntry
from jfp.core.persistence.json_file import read_json, write_json_atomic
from jfp.core.services.hashing import hash_file
from jfp.core.services.safe_paths import resolve_skill_path

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"

GENERATED_MARKER = "x_jfp_generated: true"


def manifest_path(root: Path) -> Path:
    """Path of the manifest file for an install root."""
    return root / MANIFEST_FILE


def read_manifest(root: Path) -> Manifest | None:
    """Load the manifest for ``root``.

    Returns:
        The validated Manifest, or None if the file is missing, is not
        valid JSON, or fails schema validation.
    """
    path = manifest_path(root)
    data = read_json(path)
    if data is None:
        return None

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid manifest %s: %d error(s) — ignoring", path, e.error_count())
        return None

    logger.debug("Loaded manifest %s (%d entries)", path, len(manifest.entries))
    return manifest


def create_empty_manifest(tool_version: str) -> Manifest:
    """A fresh manifest with no entries."""
    return Manifest(jfp_version=tool_version, entries=[])


def upsert_manifest_entry(manifest: Manifest, entry: ManifestEntry) -> Manifest:
    """Return a copy with ``entry`` replacing any entry with the same id.

    Existing entries keep their position; new ids are appended.
    """
    entries = list(manifest.entries)
    for index, existing in enumerate(entries):
        if existing.id == entry.id:
            entries[index] = entry
            break
    else:
        entries.append(entry)
    return manifest.model_copy(update={"entries": entries})


def remove_manifest_entry(manifest: Manifest, entry_id: str) -> Manifest:
    """Return a copy without the entry for ``entry_id`` (no-op if absent)."""
    entries = [entry for entry in manifest.entries if entry.id != entry_id]
    return manifest.model_copy(update={"entries": entries})


def get_manifest_entry(manifest: Manifest | None, entry_id: str) -> ManifestEntry | None:
    """Look up an entry, tolerating a missing manifest."""
    if manifest is None:
        return None
    return manifest.get(entry_id)


def stamp_manifest(manifest: Manifest, tool_version: str) -> Manifest:
    """Return a copy with a fresh ``generatedAt`` and the writing tool's version."""
    return manifest.model_copy(
        update={
            "generated_at": datetime.now(UTC).isoformat(),
            "jfp_version": tool_version,
        }
    )


def write_manifest(root: Path, manifest: Manifest) -> None:
    """Persist ``manifest`` to ``root`` atomically.

    Creates the root directory if needed.  Serialization is stable:
    writing the same manifest twice produces identical bytes.

    Raises:
        OSError: If the write fails.  The previous file is left intact.
    """
    write_json_atomic(manifest_path(root), manifest.to_wire())
    logger.info("Manifest saved to %s (%d entries)", manifest_path(root), len(manifest.entries))


# ── Modification detection ──────────────────────────────────────


@dataclass(frozen=True)
class SkillModification:
    """Result of comparing an installed file against its manifest record."""

    was_modified: bool
    can_overwrite: bool
    exists_on_disk: bool
    tracked: bool
    disk_hash: str | None = None
    manifest_hash: str | None = None


def check_skill_modification(
    root: Path,
    entry_id: str,
    manifest: Manifest | None,
) -> SkillModification:
    """Compare the on-disk skill file for ``entry_id`` with the manifest.

    - no file on disk        → not modified, may overwrite
    - file but no record     → not ours; may not overwrite without force
    - file and record        → modified iff the hashes differ
    """
    path = resolve_skill_path(root, entry_id)
    disk_hash = hash_file(path)
    entry = get_manifest_entry(manifest, entry_id)
    manifest_hash = entry.hash if entry else None

    if disk_hash is None:
        return SkillModification(
            was_modified=False,
            can_overwrite=True,
            exists_on_disk=False,
            tracked=entry is not None,
            manifest_hash=manifest_hash,
        )

    if entry is None:
        return SkillModification(
            was_modified=False,
            can_overwrite=False,
            exists_on_disk=True,
            tracked=False,
            disk_hash=disk_hash,
        )

    modified = disk_hash != manifest_hash
    return SkillModification(
        was_modified=modified,
        can_overwrite=not modified,
        exists_on_disk=True,
        tracked=True,
        disk_hash=disk_hash,
        manifest_hash=manifest_hash,
    )


def is_generated_by_tool(path: Path) -> bool:
    """Cheap local check for the generated-by-jfp front-matter marker.

    Only the leading ``---`` front-matter block is inspected, so a marker
    pasted into the body doesn't count.
    """
    if not path.is_file():
        return False
    try:
        # Edits may add bytes that aren't UTF-8; the marker itself is ASCII.
        text = path.read_bytes().decode("utf-8", errors="replace")
    except OSError:
        return False

    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return False
    for line in lines[1:]:
        stripped = line.strip()
        if stripped == "---":
            return False
        if stripped == GENERATED_MARKER:
            return True
    return False
