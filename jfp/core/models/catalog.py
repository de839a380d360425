"""
Catalog models — prompts and bundles served by the registry.

The client never mutates catalog entries; it only reads them, renders
them to skill files, and records what it wrote.  JSON on the wire uses
camelCase keys (``whenToUse``, ``promptIds``), Python code uses
snake_case attributes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EntryKind(StrEnum):
    """What a catalog entry (and its manifest record) represents."""

    PROMPT = "prompt"
    BUNDLE = "bundle"


class CatalogModel(BaseModel):
    """Base for wire models: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_wire(self) -> dict:
        """Serialize back to the camelCase wire format."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Prompt(CatalogModel):
    """A single installable prompt."""

    id: str
    title: str
    description: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    author: str = ""
    version: str = "1.0.0"
    content: str
    when_to_use: list[str] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
    examples: list[str] = Field(default_factory=list)
    created: str | None = None
    updated_at: str | None = None

    @property
    def kind(self) -> EntryKind:
        return EntryKind.PROMPT


class Bundle(CatalogModel):
    """A curated collection of prompts rendered as one combined skill."""

    id: str
    title: str
    description: str = ""
    version: str = "1.0.0"
    updated_at: str | None = None
    author: str = ""
    prompt_ids: list[str] = Field(default_factory=list)
    workflow: str | None = None
    when_to_use: list[str] = Field(default_factory=list)

    @property
    def kind(self) -> EntryKind:
        return EntryKind.BUNDLE


CatalogEntry = Prompt | Bundle


class RegistryMeta(CatalogModel):
    """Metadata stored next to the cached registry payload."""

    version: str = "unknown"
    etag: str | None = None
    fetched_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    prompt_count: int = 0

    def age_seconds(self, now: datetime | None = None) -> float | None:
        """Seconds since ``fetched_at``, or None if it can't be parsed."""
        try:
            fetched = datetime.fromisoformat(self.fetched_at.replace("Z", "+00:00"))
        except ValueError:
            return None
        if fetched.tzinfo is None:
            fetched = fetched.replace(tzinfo=UTC)
        current = now or datetime.now(UTC)
        return (current - fetched).total_seconds()


class Catalog(BaseModel):
    """A resolved catalog: prompts and bundles, both keyed by id."""

    version: str = "unknown"
    prompts: list[Prompt] = Field(default_factory=list)
    bundles: list[Bundle] = Field(default_factory=list)

    def get_prompt(self, prompt_id: str) -> Prompt | None:
        for prompt in self.prompts:
            if prompt.id == prompt_id:
                return prompt
        return None

    def get_bundle(self, bundle_id: str) -> Bundle | None:
        for bundle in self.bundles:
            if bundle.id == bundle_id:
                return bundle
        return None

    def get(self, entry_id: str, kind: EntryKind) -> CatalogEntry | None:
        """Look up an entry by id and kind."""
        if kind == EntryKind.BUNDLE:
            return self.get_bundle(entry_id)
        return self.get_prompt(entry_id)

    def bundle_prompts(self, bundle: Bundle) -> list[Prompt]:
        """Member prompts of a bundle, in bundle order, skipping unknown ids."""
        found = []
        for prompt_id in bundle.prompt_ids:
            prompt = self.get_prompt(prompt_id)
            if prompt is not None:
                found.append(prompt)
        return found
