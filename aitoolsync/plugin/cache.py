"""
Plugin Cache.

This module provides the durable, versioned on-disk plugin cache.

Key features:
- Deterministic plugin IDs (manifest key == directory name)
- JSON manifest at the cache root, written by atomic rename
- Per-plugin metadata sidecar next to the fetched content
- Corrupt manifests recovered by starting fresh

Layout under ``<base_dir>/plugins/``:
    cache-manifest.json
    <plugin_id>/
    <plugin_id>/.plugin-cache-meta.json

Only one process may write the cache at a time; no locking is performed.
"""

import asyncio
import contextlib
import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from aitoolsync.errors import CacheIntegrityError, PluginError

logger = logging.getLogger(__name__)

# Cache directory name within the base directory
DEFAULT_PLUGIN_CACHE_DIR = "plugins"

CACHE_MANIFEST_FILE = "cache-manifest.json"

PLUGIN_META_FILE = ".plugin-cache-meta.json"

MANIFEST_SCHEMA_VERSION = "1.0.0"

CLAUDE_PLUGIN_ROOT_VAR = "${CLAUDE_PLUGIN_ROOT}"

# Source type prefixes recognized when generating IDs
_SIMPLE_PREFIXES = ("github:", "gitlab:", "bitbucket:")
_CLAUDE_PLUGIN_PREFIX = "claude-plugin:"
_NPM_PREFIX = "npm:"
_PIP_PREFIX = "pip:"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_plugin_id(source: str, version: str | None = None) -> str:
    """
    Generate a deterministic plugin ID from a source.

    Args:
        source: Plugin source string
        version: Pinned version

    Returns:
        Filesystem-safe ID

    Example:
        generate_plugin_id("github:owner/repo", "v1.0.0")  # "github_owner_repo_v1.0.0"
        generate_plugin_id("npm:@org/pkg", "1.0.0")        # "npm_org_pkg_1.0.0"
    """
    source_type = ""
    normalized = source

    simple = next((p for p in _SIMPLE_PREFIXES if source.startswith(p)), None)
    if simple:
        source_type = simple[:-1]
        normalized = source[len(simple):]
    elif _NPM_PREFIX in source:
        # Also unwraps claude-plugin:npm:...
        source_type = "npm"
        normalized = source[source.rindex(_NPM_PREFIX) + len(_NPM_PREFIX):]
    elif source.startswith(_PIP_PREFIX):
        source_type = "pip"
        normalized = source[len(_PIP_PREFIX):]
    elif source.startswith(_CLAUDE_PLUGIN_PREFIX):
        normalized = source[len(_CLAUDE_PLUGIN_PREFIX):]

    normalized = normalized.removeprefix("@")
    normalized = re.sub(r"[/:@#]", "_", normalized)
    normalized = re.sub(r"_+", "_", normalized).strip("_")

    if version:
        safe_version = re.sub(r"[^a-zA-Z0-9.-]", "_", version)
        version_without_v = version.removeprefix("v")
        if safe_version not in normalized and version_without_v not in normalized:
            normalized = f"{normalized}_{safe_version}"

    if source_type:
        return f"{source_type}_{normalized}"
    return normalized


def calculate_content_hash(content: str | bytes) -> str:
    """
    Calculate a short SHA-256 hash for integrity checking.

    Returns:
        First 16 hex characters of the digest
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    return hashlib.sha256(data).hexdigest()[:16]


def resolve_plugin_root_variable(text: str, plugin_path: str | Path) -> str:
    """Replace every ``${CLAUDE_PLUGIN_ROOT}`` with the plugin directory."""
    return text.replace(CLAUDE_PLUGIN_ROOT_VAR, str(plugin_path))


@dataclass
class PluginCacheEntry:
    """
    Single plugin entry in the cache manifest.

    Attributes:
        id: Generated plugin ID
        source: Original source string
        version: Pinned version (exact, no ranges)
        cached_at: ISO timestamp when cached
        path: Path relative to the plugins directory
        content_hash: Short SHA-256 of the fetched content
    """

    id: str
    source: str
    cached_at: str
    path: str
    version: str | None = None
    content_hash: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "source": self.source,
            "cachedAt": self.cached_at,
            "path": self.path,
        }
        if self.version is not None:
            data["version"] = self.version
        if self.content_hash is not None:
            data["contentHash"] = self.content_hash
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PluginCacheEntry":
        return cls(
            id=data["id"],
            source=data["source"],
            cached_at=data["cachedAt"],
            path=data.get("path", data["id"]),
            version=data.get("version"),
            content_hash=data.get("contentHash"),
        )


@dataclass
class PluginCacheManifest:
    """Index of every cached plugin."""

    plugins: dict[str, PluginCacheEntry] = field(default_factory=dict)
    last_updated: str = field(default_factory=_now_iso)
    schema_version: str = MANIFEST_SCHEMA_VERSION

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.schema_version,
            "plugins": {pid: entry.to_dict() for pid, entry in self.plugins.items()},
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PluginCacheManifest":
        """
        Decode a manifest.

        Raises:
            CacheIntegrityError: If the data does not have the manifest shape
        """
        if not isinstance(data, dict) or not isinstance(data.get("plugins"), dict):
            raise CacheIntegrityError("Manifest is missing a 'plugins' mapping")

        try:
            plugins = {
                pid: PluginCacheEntry.from_dict(entry)
                for pid, entry in data["plugins"].items()
            }
        except (KeyError, TypeError, AttributeError) as e:
            raise CacheIntegrityError(f"Malformed manifest entry: {e}") from e

        return cls(
            plugins=plugins,
            last_updated=data.get("lastUpdated") or _now_iso(),
            schema_version=data.get("version", MANIFEST_SCHEMA_VERSION),
        )


@dataclass
class PluginCacheMetadata:
    """
    Per-plugin sidecar stored with the cached content.

    Attributes:
        id: Plugin ID
        source: Original source string
        cached_at: ISO timestamp when cached
        last_accessed: ISO timestamp of last use
        version: Pinned version
        content_hash: Short SHA-256 of the fetched content
        manifest: Plugin's own name/version/description, if known
    """

    id: str
    source: str
    cached_at: str
    last_accessed: str
    version: str | None = None
    content_hash: str | None = None
    manifest: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "source": self.source,
            "cachedAt": self.cached_at,
            "lastAccessed": self.last_accessed,
            "version": self.version,
            "contentHash": self.content_hash,
            "manifest": self.manifest,
        }
        return {key: value for key, value in data.items() if value is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PluginCacheMetadata":
        return cls(
            id=data["id"],
            source=data["source"],
            cached_at=data["cachedAt"],
            last_accessed=data.get("lastAccessed", data["cachedAt"]),
            version=data.get("version"),
            content_hash=data.get("contentHash"),
            manifest=data.get("manifest"),
        )


def _read_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json_atomic(path: Path, data: Any) -> None:
    """Write JSON to a temp file in the same directory, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


class PluginCache:
    """
    Plugin cache manager.

    A plugin is cached only when its manifest entry exists and its directory
    exists on disk.
    """

    def __init__(self, base_dir: str | Path):
        """
        Initialize PluginCache.

        Args:
            base_dir: Base directory; the cache lives in ``<base_dir>/plugins``
        """
        self.base_dir = Path(base_dir)
        self.cache_dir = self.base_dir / DEFAULT_PLUGIN_CACHE_DIR
        self.manifest_path = self.cache_dir / CACHE_MANIFEST_FILE
        self._manifest: PluginCacheManifest | None = None

    @property
    def manifest(self) -> PluginCacheManifest:
        if self._manifest is None:
            raise PluginError("Plugin cache not initialized. Call init() first.")
        return self._manifest

    async def init(self) -> None:
        """
        Create the cache directory and load the manifest.

        An unreadable or malformed manifest is replaced by a fresh one.
        """
        await asyncio.to_thread(self.cache_dir.mkdir, parents=True, exist_ok=True)

        try:
            self._manifest = await asyncio.to_thread(self._load_manifest)
        except FileNotFoundError:
            logger.debug("No cache manifest at %s, creating one", self.manifest_path)
            self._manifest = PluginCacheManifest()
            await self._save_manifest()
        except CacheIntegrityError as e:
            logger.warning("Ignoring unreadable cache manifest %s: %s", self.manifest_path, e)
            self._manifest = PluginCacheManifest()
            await self._save_manifest()

    def _load_manifest(self) -> PluginCacheManifest:
        try:
            data = _read_json(self.manifest_path)
        except FileNotFoundError:
            raise
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CacheIntegrityError(f"Failed to read manifest: {e}") from e
        return PluginCacheManifest.from_dict(data)

    async def _save_manifest(self) -> None:
        await asyncio.to_thread(_write_json_atomic, self.manifest_path, self.manifest.to_dict())

    def get_plugin_path(self, plugin_id: str) -> Path:
        """Get the absolute directory of a plugin by ID."""
        return self.cache_dir / plugin_id

    def get_cache_entry(self, source: str, version: str | None = None) -> PluginCacheEntry | None:
        """Get the manifest entry for a source/version, if any."""
        return self.manifest.plugins.get(generate_plugin_id(source, version))

    def find_entry(self, source: str, version: str | None = None) -> PluginCacheEntry | None:
        """
        Locate a cached entry.

        Without a version, falls back to the first entry recorded for ``source``.
        """
        entry = self.get_cache_entry(source, version)
        if entry is not None or version:
            return entry
        return next((e for e in self.manifest.plugins.values() if e.source == source), None)

    async def is_cached(self, source: str, version: str | None = None) -> bool:
        """
        Check if a plugin is cached with the requested version.

        Args:
            source: Plugin source
            version: Exact version required (no fuzzy matching)

        Returns:
            True if the manifest entry and the directory both exist
        """
        plugin_id = generate_plugin_id(source, version)
        entry = self.manifest.plugins.get(plugin_id)
        if entry is None:
            return False

        if version and entry.version != version:
            return False

        return await asyncio.to_thread(self.get_plugin_path(plugin_id).is_dir)

    async def cache_plugin(
        self,
        source: str,
        version: str | None,
        path: str | Path,
        metadata: dict[str, Any] | None = None,
    ) -> PluginCacheEntry:
        """
        Add or update a plugin in the cache.

        Args:
            source: Plugin source
            version: Pinned version
            path: Directory holding the fetched content
            metadata: Optional ``content_hash`` / ``manifest`` values for the sidecar

        Returns:
            The stored entry
        """
        metadata = metadata or {}
        plugin_id = generate_plugin_id(source, version)
        now = _now_iso()

        entry = PluginCacheEntry(
            id=plugin_id,
            source=source,
            version=version,
            cached_at=now,
            path=plugin_id,
            content_hash=metadata.get("content_hash"),
        )

        self.manifest.plugins[plugin_id] = entry
        self.manifest.last_updated = now
        await self._save_manifest()

        if Path(path) != self.get_plugin_path(plugin_id):
            logger.debug("Content for %s recorded from %s", plugin_id, path)

        sidecar = PluginCacheMetadata(
            id=plugin_id,
            source=source,
            version=version,
            cached_at=now,
            last_accessed=now,
            content_hash=metadata.get("content_hash"),
            manifest=metadata.get("manifest"),
        )
        meta_path = self.get_plugin_path(plugin_id) / PLUGIN_META_FILE
        await asyncio.to_thread(_write_json_atomic, meta_path, sidecar.to_dict())

        logger.debug("Cached plugin: %s", plugin_id)
        return entry

    async def restore_entry(self, entry: PluginCacheEntry) -> None:
        """Put a previously removed entry back into the manifest unchanged."""
        self.manifest.plugins[entry.id] = entry
        self.manifest.last_updated = _now_iso()
        await self._save_manifest()

    async def remove_entry(self, plugin_id: str) -> PluginCacheEntry | None:
        """Remove a manifest entry without touching the filesystem."""
        entry = self.manifest.plugins.pop(plugin_id, None)
        if entry is not None:
            self.manifest.last_updated = _now_iso()
            await self._save_manifest()
        return entry

    async def invalidate(self, source: str, version: str | None = None) -> None:
        """
        Remove a cached plugin (manifest entry and directory).

        A missing directory is not an error.
        """
        plugin_id = generate_plugin_id(source, version)
        await self.remove_entry(plugin_id)

        plugin_path = self.get_plugin_path(plugin_id)
        if await asyncio.to_thread(plugin_path.is_dir):
            await asyncio.to_thread(shutil.rmtree, plugin_path)
        logger.debug("Invalidated plugin: %s", plugin_id)

    async def clear_all(self) -> None:
        """Reset the manifest and delete every plugin directory."""
        self._manifest = PluginCacheManifest()
        await self._save_manifest()

        def _remove_children() -> None:
            for child in self.cache_dir.iterdir():
                if child.is_dir():
                    shutil.rmtree(child)

        await asyncio.to_thread(_remove_children)
        logger.debug("Cleared plugin cache at %s", self.cache_dir)

    def list_cached(self) -> list[PluginCacheEntry]:
        """List all cached plugin entries."""
        return list(self.manifest.plugins.values())

    async def touch_plugin(self, source: str, version: str | None = None) -> None:
        """Update the last accessed time of a plugin. Failures are ignored."""
        plugin_id = generate_plugin_id(source, version)
        meta_path = self.get_plugin_path(plugin_id) / PLUGIN_META_FILE

        try:
            data = await asyncio.to_thread(_read_json, meta_path)
            metadata = PluginCacheMetadata.from_dict(data)
            metadata.last_accessed = _now_iso()
            await asyncio.to_thread(_write_json_atomic, meta_path, metadata.to_dict())
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.debug("Could not touch plugin %s: %s", plugin_id, e)

    def read_metadata(self, plugin_id: str) -> PluginCacheMetadata | None:
        """Read a plugin's sidecar, or None if it is missing or unreadable."""
        try:
            return PluginCacheMetadata.from_dict(
                _read_json(self.get_plugin_path(plugin_id) / PLUGIN_META_FILE)
            )
        except (OSError, ValueError, KeyError, TypeError):
            return None


async def create_plugin_cache(base_dir: str | Path) -> PluginCache:
    """Create and initialize a plugin cache."""
    cache = PluginCache(base_dir)
    await cache.init()
    return cache


__all__ = [
    "CACHE_MANIFEST_FILE",
    "CLAUDE_PLUGIN_ROOT_VAR",
    "DEFAULT_PLUGIN_CACHE_DIR",
    "PLUGIN_META_FILE",
    "PluginCache",
    "PluginCacheEntry",
    "PluginCacheManifest",
    "PluginCacheMetadata",
    "calculate_content_hash",
    "create_plugin_cache",
    "generate_plugin_id",
    "resolve_plugin_root_variable",
]
