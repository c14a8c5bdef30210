"""
Plugin Updates.

This module discovers new plugin versions and swaps cached plugins to them.

Key features:
- Remote tag discovery with ``git ls-remote`` (no clone)
- Semantic version ordering of tags
- Concurrent batch checks with per-source error isolation
- Update sequence that keeps ``.local-overrides`` and rolls back on any failure
"""

import asyncio
import dataclasses
import logging
import os
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from aitoolsync.errors import (
    FetchError,
    GitUnavailableError,
    InvalidSourceError,
    LocalSourceUnsupportedError,
    PluginError,
    UpdateError,
)
from aitoolsync.loaders.git import (
    GitLoader,
    GitLoaderOptions,
    authenticated_url,
    strip_ref,
    with_ref,
)
from aitoolsync.loaders.source import is_local_source, parse_source
from aitoolsync.plugin import git_ops
from aitoolsync.plugin.cache import PluginCache, PluginCacheEntry, generate_plugin_id
from aitoolsync.plugin.version import has_newer_version, sort_versions_desc

logger = logging.getLogger(__name__)

LOCAL_OVERRIDES_DIR = ".local-overrides"

PREVIOUS_SUFFIX = ".previous"

BACKUP_SUFFIX = "-local-overrides.backup"

__all__ = [
    "UpdateState",
    "PluginVersionInfo",
    "PluginUpdateCheck",
    "PluginUpdateResult",
    "UpdateCheckOptions",
    "fetch_remote_tags",
    "has_newer_version",
    "check_for_updates",
    "check_all_plugins_for_updates",
    "update_plugin",
]


class UpdateState(Enum):
    """Steps of the update sequence."""

    IDLE = "idle"
    BACKUP_OVERRIDES = "backup_overrides"
    INVALIDATE_OLD = "invalidate_old"
    FETCH_NEW = "fetch_new"
    RESTORE_OVERRIDES = "restore_overrides"
    COMMIT = "commit"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PluginVersionInfo:
    """
    Version information for a plugin.

    Attributes:
        current_version: Cached version (None if unknown)
        latest_version: Newest remote tag (None if there are no tags)
        available_versions: Remote tags, newest first
        has_update: Whether latest is newer than current
    """

    current_version: str | None
    latest_version: str | None
    available_versions: list[str] = field(default_factory=list)
    has_update: bool = False


@dataclass
class PluginUpdateCheck:
    """Outcome of checking one source."""

    source: str
    plugin_id: str
    versions: PluginVersionInfo | None = None
    has_update: bool = False
    error: str | None = None


@dataclass
class PluginUpdateResult:
    """Outcome of a successful update."""

    source: str
    plugin_id: str
    previous_version: str | None
    new_version: str
    success: bool = True


@dataclass
class UpdateCheckOptions:
    """
    Options for update checks.

    Attributes:
        timeout: Seconds allowed for ``git ls-remote``
        use_ssh: Query hosting shorthands over SSH
        token: Access token for private HTTPS repositories
    """

    timeout: float = 30.0
    use_ssh: bool = False
    token: str | None = None


def _split_source(source: str) -> tuple[str, str | None]:
    base, _, ref = source.partition("#")
    return base, ref or None


async def fetch_remote_tags(clone_url: str, timeout: float = 30.0) -> list[str]:
    """
    Fetch tag names from a remote repository.

    Args:
        clone_url: Repository URL
        timeout: Seconds before giving up

    Returns:
        Unsorted tag names

    Raises:
        GitError: If ls-remote fails
    """
    return await git_ops.list_remote_tags(clone_url, timeout=timeout)


async def check_for_updates(
    cache: PluginCache,
    source: str,
    options: UpdateCheckOptions | None = None,
) -> PluginUpdateCheck:
    """
    Check whether a newer version of a plugin is available.

    Args:
        cache: Initialized plugin cache
        source: Plugin source, optionally pinned with ``#ref``
        options: Check options

    Returns:
        PluginUpdateCheck with the remote versions

    Raises:
        LocalSourceUnsupportedError: If the source is a filesystem path
        GitUnavailableError: If git is not installed
        InvalidSourceError: If the source is not a git source
        PluginError: If the remote has no tags
        GitError: If ls-remote fails
    """
    options = options or UpdateCheckOptions()

    if is_local_source(source):
        raise LocalSourceUnsupportedError("Local plugins cannot be updated")

    if not await git_ops.is_git_available():
        raise GitUnavailableError("Git is required for plugin updates")

    descriptor = parse_source(source, options.use_ssh)
    if descriptor is None or not descriptor.is_git:
        raise InvalidSourceError(f"Invalid plugin source: {source}")

    base_source, ref = _split_source(source)
    entry = cache.find_entry(base_source, ref)
    current_version = entry.version if entry is not None else ref

    clone_url = descriptor.clone_url
    if not descriptor.use_ssh:
        clone_url = authenticated_url(clone_url, options.token)

    tags = await fetch_remote_tags(clone_url, options.timeout)
    if not tags:
        raise PluginError("No version tags found")

    available = sort_versions_desc(tags)
    latest = available[0]
    versions = PluginVersionInfo(
        current_version=current_version,
        latest_version=latest,
        available_versions=available,
        has_update=has_newer_version(current_version, latest),
    )

    return PluginUpdateCheck(
        source=source,
        plugin_id=entry.id if entry is not None else generate_plugin_id(base_source, ref),
        versions=versions,
        has_update=versions.has_update,
    )


def _check_plugin_id(cache: PluginCache, source: str) -> str:
    base_source, ref = _split_source(source)
    entry = cache.find_entry(base_source, ref)
    return entry.id if entry is not None else generate_plugin_id(base_source, ref)


def cached_sources(cache: PluginCache) -> list[str]:
    """Sources of every cached plugin, pinned to their cached version."""
    return [
        with_ref(entry.source, entry.version) if entry.version else entry.source
        for entry in cache.list_cached()
    ]


async def check_all_plugins_for_updates(
    cache: PluginCache,
    sources: list[str] | None = None,
    options: UpdateCheckOptions | None = None,
) -> list[PluginUpdateCheck]:
    """
    Check several plugins for updates concurrently.

    A failure on one source is recorded on its item and never stops the others.

    Args:
        cache: Initialized plugin cache
        sources: Sources to check; every cached plugin if None
        options: Check options

    Returns:
        One PluginUpdateCheck per distinct source, in input order
    """
    if sources is None:
        sources = cached_sources(cache)
    unique_sources = list(dict.fromkeys(sources))

    async def _check(source: str) -> PluginUpdateCheck:
        plugin_id = _check_plugin_id(cache, source)
        try:
            return await check_for_updates(cache, source, options)
        except PluginError as e:
            logger.debug("Update check failed for %s: %s", source, e)
            return PluginUpdateCheck(source=source, plugin_id=plugin_id, error=str(e))

    return list(await asyncio.gather(*(_check(source) for source in unique_sources)))


def _merge_tree(src: Path, dst: Path) -> None:
    """Move every file from ``src`` into ``dst``, replacing same-named files."""
    dst.mkdir(parents=True, exist_ok=True)
    for path in sorted(src.rglob("*")):
        if not path.is_file():
            continue
        target = dst / path.relative_to(src)
        if target.exists():
            logger.debug("Local override replaces fetched file: %s", target)
        target.parent.mkdir(parents=True, exist_ok=True)
        os.replace(path, target)
    shutil.rmtree(src)


def _backup_overrides(plugin_path: Path | None, backup_path: Path) -> bool:
    if plugin_path is None:
        return False
    overrides = plugin_path / LOCAL_OVERRIDES_DIR
    if not overrides.is_dir():
        return False

    if backup_path.exists():
        _merge_tree(overrides, backup_path)
    else:
        os.replace(overrides, backup_path)
    return True


def _copy_overrides(backup_path: Path, plugin_path: Path) -> None:
    # The backup stays in place until the update is committed
    shutil.copytree(backup_path, plugin_path / LOCAL_OVERRIDES_DIR, dirs_exist_ok=True)


_STEP_MESSAGES = {
    UpdateState.BACKUP_OVERRIDES: "Failed to back up local overrides",
    UpdateState.INVALIDATE_OLD: "Failed to invalidate cached plugin",
    UpdateState.FETCH_NEW: "Failed to fetch",
    UpdateState.RESTORE_OVERRIDES: "Failed to restore local overrides",
    UpdateState.COMMIT: "Failed to record updated plugin",
}

# From these states on, a rollback also discards the new version's directory
_DISCARD_NEW_STATES = (
    UpdateState.FETCH_NEW,
    UpdateState.RESTORE_OVERRIDES,
    UpdateState.COMMIT,
)


class _UpdateTransaction:
    """Tracks one update through its states so failures can be unwound."""

    def __init__(
        self,
        cache: PluginCache,
        source: str,
        new_version: str,
        options: GitLoaderOptions,
    ):
        self.cache = cache
        self.source = source
        self.base_source, current_ref = _split_source(source)
        self.new_version = new_version
        self.options = options
        self.state = UpdateState.IDLE

        self.old_entry: PluginCacheEntry | None = cache.find_entry(self.base_source, current_ref)
        self.previous_version = (
            self.old_entry.version if self.old_entry is not None else current_ref
        )

        self.new_id = generate_plugin_id(self.base_source, new_version)
        self.new_path = cache.get_plugin_path(self.new_id)
        self.backup_path = cache.cache_dir / f"{self.new_id}{BACKUP_SUFFIX}"

        self.old_path: Path | None = None
        self.previous_path: Path | None = None
        if self.old_entry is not None:
            self.old_path = cache.get_plugin_path(self.old_entry.id)
            self.previous_path = cache.cache_dir / f"{self.old_entry.id}{PREVIOUS_SUFFIX}"

        self.entry_removed = False
        self.moved_aside = False
        self.overrides_backed_up = False
        self.new_preexisting = False

    def enter(self, state: UpdateState) -> None:
        logger.debug("Update %s: %s -> %s", self.source, self.state.value, state.value)
        self.state = state

    def fail(self, message: str) -> UpdateError:
        step = self.state
        logger.debug("Update %s failed at %s: %s", self.source, step.value, message)
        self.state = UpdateState.FAILED
        return UpdateError(message, step=step)

    async def run(self) -> PluginUpdateResult:
        steps = (
            (UpdateState.BACKUP_OVERRIDES, self._backup),
            (UpdateState.INVALIDATE_OLD, self._invalidate_old),
            (UpdateState.FETCH_NEW, self._fetch_new),
            (UpdateState.RESTORE_OVERRIDES, self._restore),
            (UpdateState.COMMIT, self._commit),
        )
        for state, step in steps:
            self.enter(state)
            try:
                await step()
            except asyncio.CancelledError:
                await self._rollback(discard_new=state in _DISCARD_NEW_STATES)
                self.state = UpdateState.FAILED
                raise
            except Exception as e:
                await self._rollback(discard_new=state in _DISCARD_NEW_STATES)
                raise self.fail(self._describe_failure(state, e)) from e

        await self._cleanup()
        self.enter(UpdateState.DONE)

        logger.info(
            "Updated %s: %s -> %s",
            self.base_source,
            self.previous_version or "unversioned",
            self.new_version,
        )
        return PluginUpdateResult(
            source=self.source,
            plugin_id=self.new_id,
            previous_version=self.previous_version,
            new_version=self.new_version,
            success=True,
        )

    def _describe_failure(self, state: UpdateState, error: Exception) -> str:
        prefix = _STEP_MESSAGES[state]
        if state is UpdateState.FETCH_NEW:
            prefix = f"{prefix} {with_ref(self.base_source, self.new_version)}"
        return f"{prefix}: {error}"

    async def _backup(self) -> None:
        self.overrides_backed_up = await asyncio.to_thread(
            _backup_overrides, self.old_path, self.backup_path
        )

    async def _invalidate_old(self) -> None:
        if self.old_entry is None:
            return
        await self.cache.remove_entry(self.old_entry.id)
        self.entry_removed = True
        await asyncio.to_thread(self._move_aside)

    def _move_aside(self) -> None:
        if not self.old_path.is_dir():
            return
        if self.previous_path.exists():
            shutil.rmtree(self.previous_path)
        os.replace(self.old_path, self.previous_path)
        self.moved_aside = True

    async def _fetch_new(self) -> None:
        fetch_options = dataclasses.replace(
            self.options,
            cache_dir=self.cache.base_dir,
            force_refresh=True,
            cache=None,
        )
        self.new_preexisting = await asyncio.to_thread(self.new_path.is_dir)
        result = await GitLoader().load(with_ref(self.base_source, self.new_version), fetch_options)

        fatal = [e for e in result.errors if e.kind == "directory"]
        if fatal:
            raise FetchError(fatal[0].message)
        if not await asyncio.to_thread(self.new_path.is_dir):
            raise FetchError("fetched content is missing")

    async def _restore(self) -> None:
        if self.overrides_backed_up:
            await asyncio.to_thread(_copy_overrides, self.backup_path, self.new_path)

    async def _commit(self) -> None:
        await self.cache.cache_plugin(self.base_source, self.new_version, self.new_path)

    async def _cleanup(self) -> None:
        def _remove_leftovers() -> None:
            if self.overrides_backed_up:
                shutil.rmtree(self.backup_path, ignore_errors=True)
            if self.previous_path is not None:
                shutil.rmtree(self.previous_path, ignore_errors=True)

        await asyncio.to_thread(_remove_leftovers)

    async def _rollback(self, discard_new: bool = False) -> None:
        """Put the old plugin back the way it was before the update started."""

        def _restore_files() -> None:
            if discard_new and not self.new_preexisting and self.new_path.exists():
                shutil.rmtree(self.new_path)
            if self.moved_aside:
                os.replace(self.previous_path, self.old_path)
            if self.overrides_backed_up and self.old_path is not None and self.backup_path.is_dir():
                _merge_tree(self.backup_path, self.old_path / LOCAL_OVERRIDES_DIR)

        await asyncio.to_thread(_restore_files)
        if discard_new and not self.new_preexisting:
            await self.cache.remove_entry(self.new_id)
        if self.entry_removed:
            await self.cache.restore_entry(self.old_entry)


async def update_plugin(
    cache: PluginCache,
    source: str,
    new_version: str,
    options: GitLoaderOptions | None = None,
) -> PluginUpdateResult:
    """
    Update a cached plugin to a new version.

    Local overrides in ``<plugin>/.local-overrides`` survive the update and
    replace fetched files of the same name inside that directory. If any step
    fails or the update is cancelled, the old plugin, its overrides and its
    manifest entry are restored.

    Args:
        cache: Initialized plugin cache
        source: Plugin source, optionally pinned to the current ``#ref``
        new_version: Tag or branch to update to
        options: Git loader options for the fetch

    Returns:
        PluginUpdateResult

    Raises:
        LocalSourceUnsupportedError: If the source is a filesystem path
        UpdateError: If a step fails; ``step`` names the failing state
    """
    if is_local_source(source):
        raise LocalSourceUnsupportedError("Local plugins cannot be updated")

    descriptor = parse_source(strip_ref(source))
    if descriptor is None or not descriptor.is_git:
        raise InvalidSourceError(f"Invalid plugin source: {source}")

    transaction = _UpdateTransaction(cache, source, new_version, options or GitLoaderOptions())
    return await transaction.run()
