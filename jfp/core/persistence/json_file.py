"""
JSON file persistence — best-effort reads, atomic writes.

Every file the sync core owns (manifests, registry cache, library
cache) goes through here.  Writes are atomic (write to a temp file in
the same directory, then rename) so a crash or a full disk mid-write
leaves the previous file intact.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def read_json(path: Path) -> Any | None:
    """Read and parse a JSON file.

    Returns:
        The parsed value, or None if the file is missing, unreadable
        or not valid JSON.
    """
    if not path.is_file():
        return None

    try:
        raw = path.read_text(encoding="utf-8")
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Corrupt JSON file %s: %s — ignoring", path, e)
        return None
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Cannot read %s: %s — ignoring", path, e)
        return None


def dump_json(data: Any) -> str:
    """Serialize to the canonical on-disk form (stable, indented, newline)."""
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def write_text_atomic(path: Path, content: str) -> None:
    """Write text to ``path`` atomically.

    Raises:
        OSError: If the directory can't be created or the write fails.
            The temp file is removed and the old file is untouched.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
        logger.debug("Wrote %s", path)
    except Exception:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to write %s", path)
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    """Serialize ``data`` and write it atomically."""
    write_text_atomic(path, dump_json(data))
