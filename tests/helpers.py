"""
Builders shared by the test modules.
"""

import json
from datetime import UTC, datetime

from jfp.core.models.catalog import Bundle, Catalog, Prompt
from jfp.core.models.config import JfpConfig


def make_prompt(prompt_id: str, **overrides) -> Prompt:
    """Build a valid prompt with sensible defaults."""
    data = {
        "id": prompt_id,
        "title": prompt_id.replace("-", " ").title(),
        "description": f"Description of {prompt_id}",
        "category": "testing",
        "tags": ["test"],
        "author": "Test Author",
        "version": "1.0.0",
        "content": f"Do the {prompt_id} thing.",
        "when_to_use": ["When testing"],
    }
    data.update(overrides)
    return Prompt(**data)


def make_catalog(*prompts: Prompt, bundles: list[Bundle] | None = None, version: str = "v1") -> Catalog:
    return Catalog(version=version, prompts=list(prompts), bundles=bundles or [])


def registry_payload(catalog: Catalog) -> dict:
    """Registry wire payload for a catalog."""
    return {
        "version": catalog.version,
        "prompts": [p.to_wire() for p in catalog.prompts],
        "bundles": [b.to_wire() for b in catalog.bundles],
    }


def write_registry_cache(config: JfpConfig, catalog: Catalog, fetched_at: str | None = None,
                         etag: str | None = '"etag-1"') -> None:
    """Pre-populate the registry cache and meta files for ``config``."""
    assert config.registry.cache_path is not None
    assert config.registry.meta_path is not None
    config.registry.cache_path.parent.mkdir(parents=True, exist_ok=True)
    config.registry.cache_path.write_text(json.dumps(registry_payload(catalog)))
    meta = {
        "version": catalog.version,
        "etag": etag,
        "fetchedAt": fetched_at or datetime.now(UTC).isoformat(),
        "promptCount": len(catalog.prompts),
    }
    config.registry.meta_path.write_text(json.dumps(meta))

