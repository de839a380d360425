"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from jfp.core.models.catalog import Bundle, Catalog
from jfp.core.models.config import JfpConfig, RegistrySettings, SkillsSettings
from tests.helpers import make_catalog, make_prompt


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's JFP_* environment out of tests."""
    for name in (
        "JFP_CONFIG_DIR",
        "JFP_REGISTRY_URL",
        "JFP_CACHE_TTL",
        "JFP_TIMEOUT_MS",
        "JFP_TOKEN",
        "JFP_LOG_LEVEL",
        "JFP_LOG_FILE",
        "JFP_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config(tmp_path: Path) -> JfpConfig:
    """A configuration rooted entirely in tmp_path, with no auto-refresh."""
    cfg = JfpConfig(
        config_dir=tmp_path / "config",
        registry=RegistrySettings(url="http://127.0.0.1:9/api/prompts", auto_refresh=False),
        skills=SkillsSettings(
            personal_dir=tmp_path / "personal-skills",
            project_dir=tmp_path / "project" / ".claude" / "skills",
        ),
    )
    return cfg.resolve_paths()


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    """An (initially absent) install root."""
    return tmp_path / "skills"


@pytest.fixture
def catalog() -> Catalog:
    """Two prompts and a bundle over both."""
    return make_catalog(
        make_prompt("alpha"),
        make_prompt("beta", tips=["Be brief"]),
        bundles=[
            Bundle(
                id="starter",
                title="Starter Pack",
                description="Alpha and beta together",
                prompt_ids=["alpha", "beta"],
                workflow="Run alpha, then beta.",
            )
        ],
    )
