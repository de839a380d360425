"""
Library sync — download the caller's full prompt library for offline use.

This is the one long-running operation in the CLI, so it is the one
place with an explicit inter-process lock: ``<library-dir>/.sync.lock``
is held (via ``filelock``) for the whole download-merge-write sequence.
If another process holds it, the call fails immediately with
SyncInProgressError; there is no queueing and no retry.

Files written (atomically):

    <library-dir>/prompts.json     list of synced prompts
    <library-dir>/sync.meta.json   {lastSync, promptCount, version}
"""

from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from filelock import FileLock, Timeout

from jfp import __version__
from jfp.core.errors import LibrarySyncError, NotAuthorizedError, SyncInProgressError
from jfp.core.models.config import JfpConfig
from jfp.core.persistence.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

LIBRARY_FILE = "prompts.json"
META_FILE = "sync.meta.json"
LOCK_FILE = ".sync.lock"
LIBRARY_FORMAT_VERSION = "1.0.0"


@dataclass
class LibrarySyncResult:
    """Outcome of a successful library download."""

    new_prompts: int
    total_prompts: int
    synced_at: str
    force: bool
    library_dir: Path

    def to_dict(self) -> dict:
        return {
            "synced": True,
            "newPrompts": self.new_prompts,
            "totalPrompts": self.total_prompts,
            "force": self.force,
            "syncedAt": self.synced_at,
            "libraryDir": str(self.library_dir),
        }


def library_dir(config: JfpConfig) -> Path:
    path = config.library.dir
    assert path is not None  # set by JfpConfig.resolve_paths()
    return path


def read_sync_meta(config: JfpConfig) -> dict | None:
    data = read_json(library_dir(config) / META_FILE)
    return data if isinstance(data, dict) else None


def read_library(config: JfpConfig) -> list[dict]:
    data = read_json(library_dir(config) / LIBRARY_FILE)
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict) and isinstance(item.get("id"), str)]


def merge_library(existing: list[dict], incoming: list[dict]) -> list[dict]:
    """Server versions replace existing ids in place; new ids are appended."""
    incoming_by_id = {p["id"]: p for p in incoming if isinstance(p.get("id"), str)}
    merged = [incoming_by_id.get(p["id"], p) for p in existing]
    existing_ids = {p["id"] for p in existing}
    merged.extend(p for p in incoming if p.get("id") not in existing_ids)
    return merged


def format_sync_age(iso_date: str | None, now: datetime | None = None) -> str:
    """Human-readable age of the last sync."""
    if not iso_date:
        return "never"
    try:
        then = datetime.fromisoformat(iso_date.replace("Z", "+00:00"))
    except ValueError:
        return "unknown"
    if then.tzinfo is None:
        then = then.replace(tzinfo=UTC)
    seconds = ((now or datetime.now(UTC)) - then).total_seconds()
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{int(seconds // 60)} min ago"
    if seconds < 86400:
        hours = int(seconds // 3600)
        return f"{hours} {'hour' if hours == 1 else 'hours'} ago"
    days = int(seconds // 86400)
    return f"{days} {'day' if days == 1 else 'days'} ago"


def library_status(config: JfpConfig) -> dict:
    """Last sync time, prompt count and location."""
    meta = read_sync_meta(config)
    last_sync = meta.get("lastSync") if meta else None
    return {
        "synced": meta is not None,
        "lastSync": last_sync,
        "age": format_sync_age(last_sync),
        "promptCount": len(read_library(config)),
        "libraryPath": str(library_dir(config) / LIBRARY_FILE),
        "authenticated": bool(config.token),
    }


def _fetch_library(config: JfpConfig, token: str, since: str | None) -> dict[str, Any]:
    url = config.library.api_base.rstrip("/") + "/cli/sync"
    if since:
        url += "?" + urllib.parse.urlencode({"since": since})

    req = urllib.request.Request(url, headers={
        "Accept": "application/json",
        "Authorization": f"Bearer {token}",
        "User-Agent": f"jfp/{__version__}",
    })
    timeout = max(config.registry.timeout_seconds, 10.0)

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read()
    except urllib.error.HTTPError as e:
        if e.code in (401, 403):
            raise NotAuthorizedError(
                "Your session has expired or lacks access. Please log in again."
            ) from e
        raise LibrarySyncError(f"Library sync failed: HTTP {e.code}") from e
    except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
        raise LibrarySyncError(f"Library sync failed: {getattr(e, 'reason', e)}") from e

    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise LibrarySyncError(f"Library sync returned invalid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("prompts"), list):
        raise LibrarySyncError("Library sync response has no prompt list")
    return data


def sync_library(
    config: JfpConfig,
    token: str | None = None,
    force: bool = False,
) -> LibrarySyncResult:
    """Download the library, merging incrementally unless ``force``.

    ``token`` defaults to the configured credential (``JFP_TOKEN``).

    Raises:
        NotAuthorizedError: No credentials, or the API rejected them.
        SyncInProgressError: Another sync holds the lock.
        LibrarySyncError: Network, protocol or write failure.
    """
    token = token or config.token
    if not token:
        raise NotAuthorizedError("Please log in to sync your library (set JFP_TOKEN).")

    directory = library_dir(config)
    directory.mkdir(parents=True, exist_ok=True)
    lock = FileLock(str(directory / LOCK_FILE), timeout=config.library.lock_timeout)

    try:
        lock.acquire()
    except Timeout as e:
        raise SyncInProgressError(
            "Another sync operation is in progress. Please wait and try again."
        ) from e

    try:
        meta = None if force else read_sync_meta(config)
        since = meta.get("lastSync") if meta else None
        data = _fetch_library(config, token, since)

        incoming = [p for p in data["prompts"] if isinstance(p, dict) and isinstance(p.get("id"), str)]
        prompts = incoming if force else merge_library(read_library(config), incoming)
        synced_at = data.get("last_modified") or datetime.now(UTC).isoformat()

        try:
            write_json_atomic(directory / LIBRARY_FILE, prompts)
            write_json_atomic(directory / META_FILE, {
                "lastSync": synced_at,
                "promptCount": len(prompts),
                "version": LIBRARY_FORMAT_VERSION,
            })
        except OSError as e:
            raise LibrarySyncError(f"Could not write library: {e}") from e

        logger.info("Library synced: %d new, %d total", len(incoming), len(prompts))
        return LibrarySyncResult(
            new_prompts=len(incoming),
            total_prompts=len(prompts),
            synced_at=synced_at,
            force=force,
            library_dir=directory,
        )
    finally:
        lock.release()
