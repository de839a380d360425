"""
Safe path resolution for install roots.

Catalog ids become directory names on disk.  A crafted or corrupted id
must never let a write land outside its install root, so every writer
runs two independent checks:

    1. ``is_safe_id``          — the id matches a strict slug pattern
    2. ``resolve_child_path``  — the resolved path is strictly under root

``resolve_child_path`` fails rather than clamping a path back into bounds.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from jfp.core.errors import UnsafePathError

SKILL_FILENAME = "SKILL.md"

_SAFE_ID_RE = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


def is_safe_id(entry_id: object) -> bool:
    """Return True if ``entry_id`` is a lowercase alphanumeric/hyphen slug."""
    if not isinstance(entry_id, str):
        return False
    return _SAFE_ID_RE.fullmatch(entry_id) is not None


def resolve_child_path(root: Path | str, entry_id: str) -> Path:
    """Resolve ``entry_id`` as a direct child of ``root``.

    Raises:
        UnsafePathError: If the resolved path is not strictly inside root.
    """
    base = os.path.abspath(os.fspath(root))
    candidate = os.path.abspath(os.path.join(base, entry_id))
    prefix = base if base.endswith(os.sep) else base + os.sep
    if not candidate.startswith(prefix) or candidate == base:
        raise UnsafePathError(f"Path for '{entry_id}' escapes install root {base}")
    return Path(candidate)


def resolve_skill_dir(root: Path | str, entry_id: str) -> Path:
    """Validate the id and resolve its skill directory under ``root``."""
    if not is_safe_id(entry_id):
        raise UnsafePathError(f"Unsafe skill id: {entry_id!r}")
    return resolve_child_path(root, entry_id)


def resolve_skill_path(root: Path | str, entry_id: str) -> Path:
    """Path of the generated ``SKILL.md`` for ``entry_id``."""
    return resolve_skill_dir(root, entry_id) / SKILL_FILENAME
