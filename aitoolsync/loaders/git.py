"""
Git Loader.

Clones git repositories into the plugin cache and loads rules, personas,
commands and hooks from them.

Supports:
- github:user/repo, gitlab:user/repo, bitbucket:user/repo
- git:host/user/repo and git:https://host/user/repo.git
- git@host:user/repo.git and https://host/user/repo.git
- Refs (#v1.0.0) and subpaths (github:user/repo/path/to/dir#v1.0.0)
- TTL-based cache with a fetch metadata sidecar
- Shallow clones, bounded by a timeout
"""

import json
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit, urlunsplit

from aitoolsync.errors import GitError, PluginError, SubpathMissingError
from aitoolsync.loaders.base import LoaderOptions, LoadResult
from aitoolsync.loaders.local import LocalLoader
from aitoolsync.loaders.source import SourceDescriptor, is_git_source, parse_source
from aitoolsync.log import redact_credentials
from aitoolsync.plugin import git_ops
from aitoolsync.plugin.cache import DEFAULT_PLUGIN_CACHE_DIR, generate_plugin_id

if TYPE_CHECKING:
    from aitoolsync.plugin.cache import PluginCache

logger = logging.getLogger(__name__)

# Default base directory; plugins live in its "plugins" subdirectory
DEFAULT_GIT_CACHE_DIR = ".ai-tool-sync"

# Default cache TTL in seconds (24 hours)
DEFAULT_GIT_CACHE_TTL = 24 * 60 * 60.0

GIT_METADATA_FILE = ".ai-tool-sync-metadata.json"


@dataclass
class GitLoaderOptions(LoaderOptions):
    """
    Options for the git loader.

    Attributes:
        cache_dir: Base cache directory (relative to base_path unless absolute)
        cache_ttl: Seconds a fetch stays fresh; 0 always refetches
        use_cache: Whether a fresh cached clone may be reused
        force_refresh: Refetch even if the cache is fresh
        depth: Clone depth; 0 for a full clone
        use_ssh: Clone hosting shorthands over SSH
        timeout: Seconds allowed per git command
        token: Access token for private HTTPS repositories (never logged)
        cache: Plugin cache to register fetched plugins in
    """

    cache_dir: str | Path = DEFAULT_GIT_CACHE_DIR
    cache_ttl: float = DEFAULT_GIT_CACHE_TTL
    use_cache: bool = True
    force_refresh: bool = False
    depth: int = git_ops.DEFAULT_CLONE_DEPTH
    use_ssh: bool = False
    timeout: float = git_ops.DEFAULT_GIT_TIMEOUT
    token: str | None = None
    cache: "PluginCache | None" = None

    def __repr__(self) -> str:
        token = "***" if self.token else None
        return (
            f"GitLoaderOptions(cache_dir={self.cache_dir!r}, cache_ttl={self.cache_ttl}, "
            f"force_refresh={self.force_refresh}, depth={self.depth}, "
            f"use_ssh={self.use_ssh}, timeout={self.timeout}, token={token})"
        )


@dataclass
class GitFetchMetadata:
    """
    Sidecar written next to a cloned repository.

    Attributes:
        source: Original source string
        clone_url: Clone URL (never includes the token)
        last_fetched: Epoch milliseconds of the last successful fetch
        ref: Branch/tag/commit fetched
        commit_sha: Checked-out commit
    """

    source: str
    clone_url: str
    last_fetched: int
    ref: str | None = None
    commit_sha: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "source": self.source,
            "cloneUrl": self.clone_url,
            "lastFetched": self.last_fetched,
        }
        if self.ref is not None:
            data["ref"] = self.ref
        if self.commit_sha is not None:
            data["commitSha"] = self.commit_sha
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GitFetchMetadata":
        return cls(
            source=data["source"],
            clone_url=data["cloneUrl"],
            last_fetched=int(data["lastFetched"]),
            ref=data.get("ref"),
            commit_sha=data.get("commitSha"),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


def strip_ref(source: str) -> str:
    """Remove a ``#ref`` suffix from a source string."""
    return source.split("#", 1)[0]


def with_ref(source: str, ref: str) -> str:
    """Pin a source string to ``ref``, replacing any existing ref."""
    return f"{strip_ref(source)}#{ref}"


def resolve_cache_root(cache_dir: str | Path, base_path: Path | None = None) -> Path:
    """Resolve the base cache directory against ``base_path``."""
    path = Path(cache_dir)
    if path.is_absolute():
        return path
    return (base_path or Path.cwd()) / path


def get_repo_cache_path(cache_root: Path, descriptor: SourceDescriptor) -> Path:
    """Directory a repository is cloned into."""
    plugin_id = generate_plugin_id(descriptor.raw_source, descriptor.ref)
    return cache_root / DEFAULT_PLUGIN_CACHE_DIR / plugin_id


def read_fetch_metadata(repo_path: Path) -> GitFetchMetadata | None:
    """Read the fetch sidecar, or None if missing or unreadable."""
    try:
        with open(repo_path / GIT_METADATA_FILE, encoding="utf-8") as f:
            return GitFetchMetadata.from_dict(json.load(f))
    except (OSError, ValueError, KeyError, TypeError):
        return None


def write_fetch_metadata(repo_path: Path, metadata: GitFetchMetadata) -> None:
    with open(repo_path / GIT_METADATA_FILE, "w", encoding="utf-8") as f:
        json.dump(metadata.to_dict(), f, indent=2)


def authenticated_url(clone_url: str, token: str | None) -> str:
    """Embed an access token into an HTTPS clone URL."""
    if not token:
        return clone_url
    parts = urlsplit(clone_url)
    if parts.scheme != "https":
        return clone_url
    netloc = f"{token}:x-oauth-basic@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit(parts._replace(netloc=netloc))


def is_cache_valid(repo_path: Path, cache_ttl: float) -> bool:
    """
    Check whether a cached clone can be used without fetching.

    Valid only if the directory exists, contains ``.git``, has a readable
    fetch sidecar, and was fetched less than ``cache_ttl`` seconds ago.
    """
    if cache_ttl <= 0:
        return False
    if not (repo_path / ".git").exists():
        return False

    metadata = read_fetch_metadata(repo_path)
    if metadata is None:
        return False

    age = _now_ms() - metadata.last_fetched
    return age < cache_ttl * 1000


class GitLoader:
    """Loader for git repositories."""

    name = "git"

    def __init__(self):
        self._local_loader = LocalLoader()

    def can_load(self, source: str) -> bool:
        """Check if this loader can handle the given source."""
        return is_git_source(source)

    def parse_source(self, source: str, use_ssh: bool = False) -> SourceDescriptor | None:
        descriptor = parse_source(source, use_ssh)
        if descriptor is None or not descriptor.is_git:
            return None
        return descriptor

    async def load(self, source: str, options: GitLoaderOptions | None = None) -> LoadResult:
        """
        Load content from a git repository.

        Args:
            source: Git source (e.g. github:user/repo#v1.0.0)
            options: Loading options

        Returns:
            LoadResult; failures are reported in ``errors``
        """
        options = options or GitLoaderOptions()
        result = LoadResult(source=source)

        descriptor = self.parse_source(source, options.use_ssh)
        if descriptor is None:
            result.add_error("file", source, "Invalid Git source format")
            return result

        logger.debug(
            "Loading from Git: %s%s",
            descriptor.clone_url,
            f" @ {descriptor.ref}" if descriptor.ref else "",
        )

        cache_root = resolve_cache_root(options.cache_dir, options.base_path)
        repo_path = get_repo_cache_path(cache_root, descriptor)

        needs_fetch = (
            not options.use_cache
            or options.force_refresh
            or not is_cache_valid(repo_path, options.cache_ttl)
        )

        if needs_fetch:
            try:
                await self._clone_or_update(descriptor, repo_path, options)
            except GitError as e:
                message = self._scrub(f"Failed to clone repository: {e}", options.token)
                logger.debug(message)
                result.add_error("directory", source, message)
                return result
        else:
            logger.debug("Using cached repo: %s", repo_path)

        try:
            load_path = self._resolve_load_path(repo_path, descriptor)
        except SubpathMissingError as e:
            result.add_error("directory", descriptor.subpath or source, str(e))
            return result

        local_result = await self._local_loader.load(str(load_path))
        result.rules = local_result.rules
        result.personas = local_result.personas
        result.commands = local_result.commands
        result.hooks = local_result.hooks
        result.errors.extend(local_result.errors)

        if options.cache is not None:
            await self._register(options.cache, descriptor, repo_path, needs_fetch)

        logger.debug("Loaded from Git: %s", result.summary())
        return result

    def _resolve_load_path(self, repo_path: Path, descriptor: SourceDescriptor) -> Path:
        if not descriptor.subpath:
            return repo_path
        load_path = repo_path / descriptor.subpath
        if not load_path.is_dir():
            raise SubpathMissingError(
                f"Subpath does not exist in repository: {descriptor.subpath}"
            )
        return load_path

    async def _clone_or_update(
        self,
        descriptor: SourceDescriptor,
        repo_path: Path,
        options: GitLoaderOptions,
    ) -> None:
        clone_url = descriptor.clone_url
        if not descriptor.use_ssh:
            clone_url = authenticated_url(clone_url, options.token)

        if (repo_path / ".git").exists():
            logger.debug("Fetching updates for: %s", repo_path)
            await git_ops.fetch_repo(
                repo_path, descriptor.ref, options.depth, options.timeout, remote=clone_url
            )
        else:
            if repo_path.exists():
                # Leftover without a clone (e.g. interrupted run)
                shutil.rmtree(repo_path)
            logger.debug("Cloning: %s to %s", redact_credentials(clone_url), repo_path)
            await git_ops.clone_repo(
                clone_url,
                repo_path,
                descriptor.ref,
                options.depth,
                options.timeout,
                origin_url=descriptor.clone_url,
            )

        commit_sha = await git_ops.get_commit_sha(repo_path)

        try:
            write_fetch_metadata(
                repo_path,
                GitFetchMetadata(
                    source=descriptor.raw_source,
                    clone_url=descriptor.clone_url,
                    ref=descriptor.ref,
                    commit_sha=commit_sha,
                    last_fetched=_now_ms(),
                ),
            )
        except OSError as e:
            logger.debug("Failed to save cache metadata: %s", e)

    async def _register(
        self,
        cache: "PluginCache",
        descriptor: SourceDescriptor,
        repo_path: Path,
        fetched: bool,
    ) -> None:
        base_source = strip_ref(descriptor.raw_source)
        try:
            if fetched or not await cache.is_cached(base_source, descriptor.ref):
                await cache.cache_plugin(base_source, descriptor.ref, repo_path)
            else:
                await cache.touch_plugin(base_source, descriptor.ref)
        except (OSError, PluginError) as e:
            logger.warning("Could not record %s in plugin cache: %s", base_source, e)

    @staticmethod
    def _scrub(message: str, token: str | None) -> str:
        message = redact_credentials(message)
        if token:
            message = message.replace(token, "***")
        return message


def create_git_loader() -> GitLoader:
    """Create a GitLoader instance."""
    return GitLoader()


def parse_git_source(source: str, use_ssh: bool = False) -> SourceDescriptor | None:
    """Parse a git source string; None for malformed or non-git sources."""
    return GitLoader().parse_source(source, use_ssh)


def list_cached_repos(cache_dir: str | Path) -> list[GitFetchMetadata]:
    """List fetch metadata of every cached git repository."""
    plugins_dir = Path(cache_dir) / DEFAULT_PLUGIN_CACHE_DIR
    if not plugins_dir.is_dir():
        return []

    repos = []
    for entry in sorted(plugins_dir.iterdir()):
        if entry.is_dir():
            metadata = read_fetch_metadata(entry)
            if metadata is not None:
                repos.append(metadata)
    return repos


def clear_git_cache(cache_dir: str | Path, source: str | None = None) -> None:
    """
    Delete cached git clones.

    Args:
        cache_dir: Base cache directory
        source: Only clear this source; all git clones if None
    """
    plugins_dir = Path(cache_dir) / DEFAULT_PLUGIN_CACHE_DIR
    if not plugins_dir.is_dir():
        return

    if source is not None:
        descriptor = parse_git_source(source)
        if descriptor is not None:
            shutil.rmtree(get_repo_cache_path(Path(cache_dir), descriptor), ignore_errors=True)
        return

    for entry in plugins_dir.iterdir():
        if entry.is_dir() and (entry / GIT_METADATA_FILE).exists():
            shutil.rmtree(entry)
