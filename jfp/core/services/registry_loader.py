"""
Registry loader — stale-while-revalidate access to the prompt catalog.

Two files back the cache (paths from configuration):

    registry.json       the last successful payload, as served
    registry.meta.json  {version, etag, fetchedAt, promptCount}

``load()``
    1. Warm cache → return it immediately.  If auto-refresh is on and
       the cache is older than ``cache_ttl``, a daemon thread refreshes
       it in the background; the caller never waits on the network.
    2. Cold cache → one synchronous conditional GET (bounded timeout).
    3. Nothing usable → the bundled snapshot.  This path never raises.

``refresh()``
    Conditional GET with the remembered ETag.  304 only bumps
    ``fetchedAt``; 200 rewrites both files; failure falls back to the
    cache, then to the bundled snapshot.

Locally authored entries (``*.json`` in the local prompts directory)
are merged over whichever catalog was chosen, by id.
"""

from __future__ import annotations

import http.client
import json
import logging
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from jfp import __version__
from jfp.core.data import bundled_payload
from jfp.core.models.catalog import Bundle, Catalog, Prompt, RegistryMeta
from jfp.core.models.config import JfpConfig
from jfp.core.persistence.json_file import read_json, write_json_atomic

logger = logging.getLogger(__name__)

SOURCE_CACHE = "cache"
SOURCE_REMOTE = "remote"
SOURCE_BUNDLED = "bundled"


# ── Results ─────────────────────────────────────────────────────


@dataclass
class LoadedRegistry:
    """A catalog plus where it came from."""

    catalog: Catalog
    source: str
    meta: RegistryMeta | None = None
    stale: bool = False
    warnings: list[str] = field(default_factory=list)

    @property
    def prompts(self) -> list[Prompt]:
        return self.catalog.prompts

    @property
    def bundles(self) -> list[Bundle]:
        return self.catalog.bundles

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "version": self.catalog.version,
            "prompt_count": len(self.catalog.prompts),
            "bundle_count": len(self.catalog.bundles),
            "stale": self.stale,
            "meta": self.meta.to_wire() if self.meta else None,
            "warnings": self.warnings,
        }


@dataclass
class FetchResult:
    """Outcome of one conditional GET against the registry."""

    payload: dict | None = None
    meta: RegistryMeta | None = None
    not_modified: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.payload is not None and self.meta is not None


# ── Parsing & merging ───────────────────────────────────────────


def _is_bundle_record(item: Any) -> bool:
    return isinstance(item, dict) and ("promptIds" in item or "prompt_ids" in item)


def parse_entries(items: list[Any]) -> tuple[list[Prompt], list[Bundle]]:
    """Validate raw records, skipping (and logging) invalid ones."""
    prompts: list[Prompt] = []
    bundles: list[Bundle] = []
    for item in items:
        try:
            if _is_bundle_record(item):
                bundles.append(Bundle.model_validate(item))
            else:
                prompts.append(Prompt.model_validate(item))
        except ValidationError as e:
            ident = item.get("id", "?") if isinstance(item, dict) else "?"
            logger.warning("Skipping invalid catalog entry '%s': %d error(s)", ident, e.error_count())
    return prompts, bundles


def parse_payload(data: Any) -> Catalog | None:
    """Build a Catalog from a registry payload, or None if it isn't one."""
    if not isinstance(data, dict) or not isinstance(data.get("prompts"), list):
        return None
    prompts, _ = parse_entries(data["prompts"])
    raw_bundles = data.get("bundles")
    bundles: list[Bundle] = []
    if isinstance(raw_bundles, list):
        _, bundles = parse_entries(
            [b for b in raw_bundles if _is_bundle_record(b)]
        )
    return Catalog(version=str(data.get("version") or "unknown"), prompts=prompts, bundles=bundles)


def _merge_by_id(base: list, extras: list) -> list:
    if not extras:
        return base
    merged = list(base)
    index_by_id = {item.id: i for i, item in enumerate(merged)}
    for item in extras:
        index = index_by_id.get(item.id)
        if index is None:
            index_by_id[item.id] = len(merged)
            merged.append(item)
        else:
            merged[index] = item
    return merged


def merge_catalogs(base: Catalog, local: Catalog) -> Catalog:
    """Local entries override catalog entries with the same id."""
    return Catalog(
        version=base.version,
        prompts=_merge_by_id(base.prompts, local.prompts),
        bundles=_merge_by_id(base.bundles, local.bundles),
    )


def load_local_entries(directory: Path | None) -> Catalog:
    """Read every ``*.json`` in ``directory`` (one entry or a list each)."""
    if directory is None or not directory.is_dir():
        return Catalog(version="local")

    items: list[Any] = []
    for path in sorted(directory.glob("*.json")):
        if not path.is_file():
            continue
        data = read_json(path)
        if data is None:
            continue
        if isinstance(data, list):
            items.extend(data)
        else:
            items.append(data)

    prompts, bundles = parse_entries(items)
    if prompts or bundles:
        logger.debug("Loaded %d local prompt(s), %d local bundle(s) from %s",
                     len(prompts), len(bundles), directory)
    return Catalog(version="local", prompts=prompts, bundles=bundles)


def bundled_catalog() -> Catalog:
    """The snapshot shipped with the package."""
    catalog = parse_payload(bundled_payload())
    return catalog if catalog is not None else Catalog(version="bundled")


# ── Network ─────────────────────────────────────────────────────


def fetch_registry(url: str, timeout: float, etag: str | None = None) -> FetchResult:
    """Conditional GET of the registry payload.

    Never raises: every failure is reported through ``FetchResult.error``.
    """
    headers = {
        "Accept": "application/json",
        "User-Agent": f"jfp/{__version__}",
    }
    if etag:
        headers["If-None-Match"] = etag

    try:
        req = urllib.request.Request(url, headers=headers)
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            status = resp.status
            body = resp.read()
            response_etag = resp.headers.get("ETag")
    except urllib.error.HTTPError as e:
        if e.code == 304:
            logger.debug("Registry not modified (etag=%s)", etag)
            return FetchResult(not_modified=True)
        return FetchResult(error=f"Registry returned HTTP {e.code}")
    except (urllib.error.URLError, http.client.HTTPException, OSError, ValueError) as e:
        reason = getattr(e, "reason", e)
        return FetchResult(error=f"Registry unreachable: {reason}")

    if status == 304:
        return FetchResult(not_modified=True)
    if status != 200:
        return FetchResult(error=f"Registry returned HTTP {status}")

    try:
        data = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return FetchResult(error=f"Registry returned invalid JSON: {e}")

    catalog = parse_payload(data)
    if catalog is None:
        return FetchResult(error="Registry payload has no prompt list")

    meta = RegistryMeta(
        version=catalog.version,
        etag=response_etag,
        fetched_at=datetime.now(UTC).isoformat(),
        prompt_count=len(catalog.prompts),
    )
    logger.info("Fetched registry %s (%d prompts)", meta.version, meta.prompt_count)
    return FetchResult(payload=data, meta=meta)


Fetcher = Callable[..., FetchResult]


# ── Loader ──────────────────────────────────────────────────────


class RegistryLoader:
    """Stale-while-revalidate loader bound to one configuration."""

    def __init__(self, config: JfpConfig, fetcher: Fetcher | None = None):
        self._config = config
        self._fetch = fetcher or fetch_registry
        self._refresh_thread: threading.Thread | None = None

    @property
    def cache_path(self) -> Path:
        path = self._config.registry.cache_path
        assert path is not None  # set by JfpConfig.resolve_paths()
        return path

    @property
    def meta_path(self) -> Path:
        path = self._config.registry.meta_path
        assert path is not None
        return path

    @property
    def refresh_timeout(self) -> float:
        """Upper bound for waiting on a background refresh."""
        return self._config.registry.timeout_seconds

    # ── Cache ───────────────────────────────────────────────────

    def read_cache(self) -> tuple[Catalog | None, RegistryMeta | None]:
        """Cached catalog and meta; either may be None."""
        catalog = parse_payload(read_json(self.cache_path))
        raw_meta = read_json(self.meta_path)
        meta = None
        if isinstance(raw_meta, dict):
            try:
                meta = RegistryMeta.model_validate(raw_meta)
            except ValidationError:
                logger.warning("Ignoring invalid registry meta at %s", self.meta_path)
        return catalog, meta

    def _write_cache(self, result: FetchResult) -> str | None:
        assert result.payload is not None and result.meta is not None
        try:
            write_json_atomic(self.cache_path, result.payload)
            write_json_atomic(self.meta_path, result.meta.to_wire())
        except OSError as e:
            logger.warning("Could not write registry cache: %s", e)
            return f"Could not write registry cache: {e}"
        return None

    def is_stale(self, meta: RegistryMeta | None) -> bool:
        """True when the cache is older than ``cache_ttl`` (or undated)."""
        if meta is None:
            return True
        age = meta.age_seconds()
        if age is None:
            return True
        return age >= self._config.registry.cache_ttl

    def _with_local(self, catalog: Catalog) -> Catalog:
        if not self._config.local_prompts.enabled:
            return catalog
        return merge_catalogs(catalog, load_local_entries(self._config.local_prompts.dir))

    # ── Public API ──────────────────────────────────────────────

    def load(self) -> LoadedRegistry:
        """Load the catalog, preferring the cache.  Never raises."""
        cached, meta = self.read_cache()

        if cached is not None and cached.prompts:
            stale = self.is_stale(meta)
            if stale and self._config.registry.auto_refresh:
                self.start_background_refresh()
            return LoadedRegistry(
                catalog=self._with_local(cached),
                source=SOURCE_CACHE,
                meta=meta,
                stale=stale,
            )

        settings = self._config.registry
        result = self._fetch(settings.url, settings.timeout_seconds, meta.etag if meta else None)
        warnings: list[str] = []

        if result.ok:
            write_warning = self._write_cache(result)
            if write_warning:
                warnings.append(write_warning)
            catalog = parse_payload(result.payload)
            assert catalog is not None
            return LoadedRegistry(
                catalog=self._with_local(catalog),
                source=SOURCE_REMOTE,
                meta=result.meta,
                warnings=warnings,
            )

        if result.error:
            warnings.append(f"{result.error} — using bundled prompts")
            logger.warning("%s — using bundled prompts", result.error)
        return LoadedRegistry(
            catalog=self._with_local(bundled_catalog()),
            source=SOURCE_BUNDLED,
            warnings=warnings,
        )

    def refresh(self) -> LoadedRegistry:
        """Force a conditional fetch.  Never raises."""
        cached, meta = self.read_cache()
        has_cache = cached is not None and bool(cached.prompts)
        etag = meta.etag if meta and has_cache else None

        settings = self._config.registry
        result = self._fetch(settings.url, settings.timeout_seconds, etag)
        warnings: list[str] = []

        if result.not_modified and has_cache:
            assert cached is not None
            refreshed = None
            if meta is not None:
                refreshed = meta.model_copy(update={"fetched_at": datetime.now(UTC).isoformat()})
                try:
                    write_json_atomic(self.meta_path, refreshed.to_wire())
                except OSError as e:
                    warnings.append(f"Could not update registry meta: {e}")
            return LoadedRegistry(
                catalog=self._with_local(cached),
                source=SOURCE_CACHE,
                meta=refreshed,
                warnings=warnings,
            )

        if result.ok:
            write_warning = self._write_cache(result)
            if write_warning:
                warnings.append(write_warning)
            catalog = parse_payload(result.payload)
            assert catalog is not None
            return LoadedRegistry(
                catalog=self._with_local(catalog),
                source=SOURCE_REMOTE,
                meta=result.meta,
                warnings=warnings,
            )

        if result.error:
            warnings.append(result.error)
            logger.warning("Registry refresh failed: %s", result.error)

        if has_cache:
            assert cached is not None
            return LoadedRegistry(
                catalog=self._with_local(cached),
                source=SOURCE_CACHE,
                meta=meta,
                stale=self.is_stale(meta),
                warnings=warnings,
            )

        return LoadedRegistry(
            catalog=self._with_local(bundled_catalog()),
            source=SOURCE_BUNDLED,
            warnings=warnings,
        )

    # ── Background refresh ──────────────────────────────────────

    def start_background_refresh(self) -> bool:
        """Kick off ``refresh()`` on a daemon thread (fire-and-forget).

        Returns:
            False if a refresh from this loader is already running.
        """
        if self._refresh_thread is not None and self._refresh_thread.is_alive():
            return False

        def _run() -> None:
            try:
                self.refresh()
            except Exception as e:  # fire-and-forget
                logger.debug("Background registry refresh failed: %s", e)

        self._refresh_thread = threading.Thread(
            target=_run, name="jfp-registry-refresh", daemon=True
        )
        self._refresh_thread.start()
        logger.debug("Background registry refresh started")
        return True

    def join_refresh(self, timeout: float | None = None) -> None:
        """Wait for an in-flight background refresh, if any."""
        if self._refresh_thread is not None:
            self._refresh_thread.join(timeout)

    # ── Status ──────────────────────────────────────────────────

    def status(self) -> dict:
        """Cache presence, age and staleness for ``jfp registry status``."""
        cached, meta = self.read_cache()
        local_dir = self._config.local_prompts.dir
        local_files = (
            len(list(local_dir.glob("*.json")))
            if self._config.local_prompts.enabled and local_dir and local_dir.is_dir()
            else 0
        )
        age = meta.age_seconds() if meta else None
        return {
            "url": self._config.registry.url,
            "cache_path": str(self.cache_path),
            "cached": cached is not None and bool(cached.prompts),
            "cached_prompts": len(cached.prompts) if cached else 0,
            "meta": meta.to_wire() if meta else None,
            "age_seconds": int(age) if age is not None else None,
            "stale": self.is_stale(meta),
            "auto_refresh": self._config.registry.auto_refresh,
            "cache_ttl": self._config.registry.cache_ttl,
            "local_prompt_files": local_files,
        }


def load_registry(config: JfpConfig) -> LoadedRegistry:
    """One-shot ``RegistryLoader(config).load()``."""
    return RegistryLoader(config).load()


def refresh_registry(config: JfpConfig) -> LoadedRegistry:
    """One-shot ``RegistryLoader(config).refresh()``."""
    return RegistryLoader(config).refresh()


def registry_status(config: JfpConfig) -> dict:
    """One-shot ``RegistryLoader(config).status()``."""
    return RegistryLoader(config).status()
