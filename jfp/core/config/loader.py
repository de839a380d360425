"""
Configuration loader — reads config.yml into the JfpConfig model.

Resolution order for the config directory:
    explicit path  >  JFP_CONFIG_DIR env var  >  ~/.config/jfp

A missing config file yields defaults.  A config file that exists but
is invalid raises ConfigError.

Environment overrides (applied last):
    JFP_REGISTRY_URL, JFP_CACHE_TTL, JFP_TIMEOUT_MS, JFP_TOKEN
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import ValidationError

from jfp.core.errors import ConfigError
from jfp.core.models.config import JfpConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.yml"
CONFIG_DIR_ENV = "JFP_CONFIG_DIR"


def default_config_dir() -> Path:
    """The jfp config directory (env override or ~/.config/jfp)."""
    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return Path.home() / ".config" / "jfp"


def default_config_path() -> Path:
    return default_config_dir() / CONFIG_FILE


def _read_config_data(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def _parse_env_int(name: str) -> int | None:
    value = os.environ.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return None


def apply_env_overrides(config: JfpConfig) -> JfpConfig:
    """Apply JFP_* environment variables on top of file values."""
    registry_url = os.environ.get("JFP_REGISTRY_URL")
    if registry_url:
        config.registry.url = registry_url

    cache_ttl = _parse_env_int("JFP_CACHE_TTL")
    if cache_ttl is not None and cache_ttl >= 0:
        config.registry.cache_ttl = cache_ttl

    timeout_ms = _parse_env_int("JFP_TIMEOUT_MS")
    if timeout_ms is not None and timeout_ms > 0:
        config.registry.timeout_ms = timeout_ms

    token = os.environ.get("JFP_TOKEN")
    if token:
        config.token = token

    return config


def load_config(path: Path | None = None) -> JfpConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file.  If None, uses the default location.

    Returns:
        Validated JfpConfig with all paths resolved.

    Raises:
        ConfigError: If the file exists but is invalid.
    """
    if path is None:
        path = default_config_path()
        config_dir = default_config_dir()
    else:
        config_dir = path.parent

    data: dict = {}
    if path.is_file():
        logger.debug("Loading config from %s", path)
        data = _read_config_data(path)
    else:
        logger.debug("No config at %s — using defaults", path)

    data.setdefault("config_dir", str(config_dir))

    try:
        config = JfpConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    return apply_env_overrides(config).resolve_paths()


# ── Config check ────────────────────────────────────────────────


@dataclass
class ConfigCheckResult:
    """Result of validating the configuration file."""

    path: Path
    exists: bool = False
    valid: bool = False
    config: JfpConfig | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "exists": self.exists,
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def check_config(path: Path | None = None) -> ConfigCheckResult:
    """Validate the config file and report problems without raising."""
    target = path or default_config_path()
    result = ConfigCheckResult(path=target, exists=target.is_file())

    try:
        config = load_config(path)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.valid = True
    result.config = config

    if not result.exists:
        result.warnings.append(f"No config file at {target} — using defaults")
    if not config.registry.url.startswith(("https://", "http://")):
        result.warnings.append(f"Registry URL is not http(s): {config.registry.url}")
    elif config.registry.url.startswith("http://"):
        result.warnings.append("Registry URL uses plain http")
    if config.local_prompts.enabled and config.local_prompts.dir and not config.local_prompts.dir.is_dir():
        result.warnings.append(f"Local prompts directory does not exist: {config.local_prompts.dir}")

    return result
