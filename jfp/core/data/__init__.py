"""
Bundled catalog snapshot — the offline last resort.

``bundled_registry.json`` ships inside the package and is used only when
there is no cache and the registry is unreachable.  Loading it must not
fail, so it is parsed once and cached for the process lifetime.
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent
BUNDLED_REGISTRY_FILE = "bundled_registry.json"


@lru_cache(maxsize=1)
def bundled_payload() -> dict:
    """Raw registry payload of the bundled snapshot."""
    path = _DATA_DIR / BUNDLED_REGISTRY_FILE
    if not path.exists():
        logger.warning("Bundled registry not found: %s", path)
        return {"version": "bundled", "prompts": [], "bundles": []}
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    logger.debug("Loaded bundled registry (%d prompts)", len(data.get("prompts", [])))
    return data
