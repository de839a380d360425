"""
Content hashing — the unit of change detection.

Hash equality is treated as content equality everywhere in the sync
core, so this is a cryptographic digest, not a checksum.  Files are
hashed as raw bytes; rendered content is hashed as its UTF-8 encoding,
so the two agree for anything this tool wrote.
"""

from __future__ import annotations

import hashlib
from pathlib import Path


def compute_hash(content: str) -> str:
    """Hex SHA-256 of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def hash_file(path: Path) -> str | None:
    """Hash a file's bytes, or None if the file doesn't exist."""
    if not path.is_file():
        return None
    return hashlib.sha256(path.read_bytes()).hexdigest()
