"""
Manifest models — the local ledger of installed skills.

One manifest lives at the top of each install root.  It records, per
installed entry, the catalog version and the hash of the content that
was written, so later runs can tell "we wrote this" from "the user
edited this".
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field, model_validator

from jfp.core.models.catalog import CatalogModel, EntryKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ManifestEntry(CatalogModel):
    """One installed skill or bundle.  Every field is required."""

    id: str
    kind: EntryKind
    version: str
    hash: str
    updated_at: str


class Manifest(CatalogModel):
    """Ordered collection of manifest entries, at most one per id."""

    generated_at: str = Field(default_factory=_now_iso)
    jfp_version: str = ""
    entries: list[ManifestEntry] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self) -> Manifest:
        seen: set[str] = set()
        for entry in self.entries:
            if entry.id in seen:
                raise ValueError(f"duplicate manifest entry id: {entry.id}")
            seen.add(entry.id)
        return self

    def get(self, entry_id: str) -> ManifestEntry | None:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def ids(self) -> list[str]:
        return [entry.id for entry in self.entries]
