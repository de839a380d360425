"""
Configuration model — loaded from ``config.yml`` in the jfp config directory.

Every field has a default, so a missing file yields a working
configuration.  Relative defaults are anchored on the config directory
by :func:`jfp.core.config.loader.load_config`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_REGISTRY_URL = "https://jeffreysprompts.com/api/prompts"
DEFAULT_API_BASE = "https://jeffreysprompts.com/api"
DEFAULT_CACHE_TTL = 3600
DEFAULT_TIMEOUT_MS = 2000


class RegistrySettings(BaseModel):
    """Where the catalog comes from and how it is cached."""

    url: str = DEFAULT_REGISTRY_URL
    cache_path: Path | None = None
    meta_path: Path | None = None
    auto_refresh: bool = True
    cache_ttl: int = Field(default=DEFAULT_CACHE_TTL, ge=0)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


class SkillsSettings(BaseModel):
    """The two independent install roots."""

    personal_dir: Path = Field(
        default_factory=lambda: Path.home() / ".config" / "claude" / "skills"
    )
    project_dir: Path = Path(".claude") / "skills"
    prefer_project: bool = False


class LocalPromptsSettings(BaseModel):
    """Locally authored catalog entries merged over the registry."""

    enabled: bool = True
    dir: Path | None = None


class LibrarySettings(BaseModel):
    """Full-library download (premium vault) settings."""

    api_base: str = DEFAULT_API_BASE
    dir: Path | None = None
    lock_timeout: float = Field(default=0.0, ge=0)


class JfpConfig(BaseModel):
    """Root configuration."""

    config_dir: Path = Field(default_factory=lambda: Path.home() / ".config" / "jfp")
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    skills: SkillsSettings = Field(default_factory=SkillsSettings)
    local_prompts: LocalPromptsSettings = Field(default_factory=LocalPromptsSettings)
    library: LibrarySettings = Field(default_factory=LibrarySettings)
    token: str | None = Field(default=None, exclude=True)

    def resolve_paths(self) -> JfpConfig:
        """Fill unset paths and anchor relative ones on ``config_dir``."""
        self.config_dir = self.config_dir.expanduser()
        base = self.config_dir

        def anchor(value: Path | None, default: str) -> Path:
            if value is None:
                return base / default
            value = value.expanduser()
            return value if value.is_absolute() else base / value

        self.registry.cache_path = anchor(self.registry.cache_path, "registry.json")
        self.registry.meta_path = anchor(self.registry.meta_path, "registry.meta.json")
        self.local_prompts.dir = anchor(self.local_prompts.dir, "local")
        self.library.dir = anchor(self.library.dir, "library")
        return self

    def skills_root(self, project: bool, cwd: Path | None = None) -> Path:
        """Absolute install root for the personal or project scope."""
        if project:
            root = self.skills.project_dir
            if not root.is_absolute():
                root = (cwd or Path.cwd()) / root
            return root.resolve()
        return self.skills.personal_dir.expanduser().resolve()

    def to_display_dict(self) -> dict:
        """JSON-friendly view (credentials excluded)."""
        return self.model_dump(mode="json")
