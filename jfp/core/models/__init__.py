"""
Domain models — Pydantic types for the registry and skill sync core.

All models are re-exported here for convenient access:

    from jfp.core.models import Prompt, Bundle, Catalog, Manifest, JfpConfig
"""

from jfp.core.models.catalog import (
    Bundle,
    Catalog,
    CatalogEntry,
    EntryKind,
    Prompt,
    RegistryMeta,
)
from jfp.core.models.config import (
    JfpConfig,
    LibrarySettings,
    LocalPromptsSettings,
    RegistrySettings,
    SkillsSettings,
)
from jfp.core.models.manifest import Manifest, ManifestEntry

__all__ = [
    # catalog.py
    "Bundle",
    "Catalog",
    "CatalogEntry",
    "EntryKind",
    # config.py
    "JfpConfig",
    "LibrarySettings",
    "LocalPromptsSettings",
    # manifest.py
    "Manifest",
    "ManifestEntry",
    "Prompt",
    "RegistryMeta",
    "RegistrySettings",
    "SkillsSettings",
]
