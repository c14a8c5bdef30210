"""
URL Loader.

Fetches rules, personas, commands and hooks from HTTP(S) endpoints.

Supports:
- Single files: url:https://example.com/rules/typescript.md
- Directory endpoints with a JSON index: url:https://example.com/ai-rules/
- TTL cache (in memory, optionally mirrored to disk)
- Conditional requests (ETag / Last-Modified)
- Request timeouts
"""

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

import httpx

from aitoolsync.loaders.base import LoaderOptions, LoadResult
from aitoolsync.loaders.source import URL_PREFIX, is_url_source
from aitoolsync.parsers import ContentType, ParseError, parse_content
from aitoolsync.plugin.cache import calculate_content_hash

logger = logging.getLogger(__name__)

# Default request timeout in seconds
DEFAULT_URL_TIMEOUT = 30.0

# Default cache TTL in seconds (1 hour)
DEFAULT_URL_CACHE_TTL = 60 * 60.0

USER_AGENT = "ai-tool-sync/1.0"

SINGLE_FILE_SUFFIXES = (".md", ".markdown", ".yaml", ".yml", ".json")

# Path fragments used to guess the content type of a single file
_TYPE_MARKERS: tuple[tuple[ContentType, tuple[str, ...]], ...] = (
    (ContentType.RULE, ("/rules/", "/rule")),
    (ContentType.PERSONA, ("/personas/", "/persona", "/agents/", "/agent")),
    (ContentType.COMMAND, ("/commands/", "/command")),
    (ContentType.HOOK, ("/hooks/", "/hook")),
)

# Directory names probed for per-type indexes; first answer wins
_INDEX_DIRECTORIES: dict[ContentType, tuple[str, ...]] = {
    ContentType.RULE: ("rules",),
    ContentType.PERSONA: ("personas", "agents"),
    ContentType.COMMAND: ("commands",),
    ContentType.HOOK: ("hooks",),
}

# Keys of the top-level index.json and the directory their files live in
_INDEX_KEYS: dict[str, tuple[ContentType, str]] = {
    "rules": (ContentType.RULE, "rules"),
    "personas": (ContentType.PERSONA, "personas"),
    "commands": (ContentType.COMMAND, "commands"),
    "hooks": (ContentType.HOOK, "hooks"),
}


@dataclass
class UrlCacheEntry:
    """
    Cached response body.

    Attributes:
        content: Response body
        fetched_at: Epoch seconds of the last fetch or 304 revalidation
        etag: ETag header, if the server sent one
        last_modified: Last-Modified header, if the server sent one
    """

    content: str
    fetched_at: float
    etag: str | None = None
    last_modified: str | None = None


def cache_file_path(url: str, cache_dir: str | Path) -> Path:
    """Disk cache file for ``url``: ``<hostname>_<hash>.cache``."""
    hostname = urlsplit(url).hostname or "unknown"
    return Path(cache_dir) / f"{hostname}_{calculate_content_hash(url)}.cache"


class UrlCache:
    """
    TTL cache of fetched URL bodies.

    Entries live in memory; when a ``cache_dir`` is passed the body is also
    written to disk and disk freshness is judged by file mtime.
    """

    def __init__(self):
        self._entries: dict[str, UrlCacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def lookup(self, url: str) -> UrlCacheEntry | None:
        """Return the stored entry regardless of age."""
        return self._entries.get(url)

    def get(self, url: str, ttl: float, cache_dir: str | Path | None = None) -> str | None:
        """
        Get a fresh cached body.

        Args:
            url: Requested URL
            ttl: Maximum age in seconds
            cache_dir: Disk tier directory, if any

        Returns:
            Cached body, or None on miss or expiry
        """
        now = time.time()
        entry = self._entries.get(url)
        if entry is not None and now - entry.fetched_at < ttl:
            return entry.content

        if cache_dir is None:
            return None

        path = cache_file_path(url, cache_dir)
        try:
            mtime = path.stat().st_mtime
            if now - mtime >= ttl:
                return None
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

        self._entries[url] = UrlCacheEntry(content=content, fetched_at=mtime)
        return content

    def set(
        self,
        url: str,
        content: str,
        etag: str | None = None,
        last_modified: str | None = None,
        cache_dir: str | Path | None = None,
    ) -> UrlCacheEntry:
        """Store a body, mirroring it to disk when ``cache_dir`` is given."""
        entry = UrlCacheEntry(
            content=content,
            fetched_at=time.time(),
            etag=etag,
            last_modified=last_modified,
        )
        self._entries[url] = entry

        if cache_dir is not None:
            path = cache_file_path(url, cache_dir)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(content, encoding="utf-8")
            except OSError as e:
                logger.debug("Failed to write cache file %s: %s", path, e)

        return entry

    def refresh(self, url: str, cache_dir: str | Path | None = None) -> UrlCacheEntry | None:
        """Mark a stored entry as just revalidated (HTTP 304)."""
        entry = self._entries.get(url)
        if entry is None:
            return None

        entry.fetched_at = time.time()
        if cache_dir is not None:
            path = cache_file_path(url, cache_dir)
            if path.exists():
                try:
                    os.utime(path)
                except OSError as e:
                    logger.debug("Failed to touch cache file %s: %s", path, e)
        return entry

    def clear(self) -> None:
        """Drop every in-memory entry."""
        self._entries.clear()

    def entries(self) -> dict[str, UrlCacheEntry]:
        """Snapshot of the in-memory entries."""
        return dict(self._entries)


@dataclass
class UrlLoaderOptions(LoaderOptions):
    """
    Options for the URL loader.

    Attributes:
        timeout: Request timeout in seconds
        cache_ttl: Seconds a cached body stays fresh; 0 disables caching
        use_cache: Whether cached bodies may be used
        cache_dir: Directory for the disk tier; memory only if None
        headers: Extra request headers
        follow_redirects: Whether redirects are followed
    """

    timeout: float = DEFAULT_URL_TIMEOUT
    cache_ttl: float = DEFAULT_URL_CACHE_TTL
    use_cache: bool = True
    cache_dir: str | Path | None = None
    headers: dict[str, str] = field(default_factory=dict)
    follow_redirects: bool = True


def strip_url_prefix(source: str) -> str:
    return source[len(URL_PREFIX):] if source.startswith(URL_PREFIX) else source


def is_valid_url(source: str) -> bool:
    """Check that a source (with or without ``url:``) is an HTTP(S) URL."""
    try:
        parts = urlsplit(strip_url_prefix(source))
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def is_single_file(url: str) -> bool:
    return urlsplit(url).path.lower().endswith(SINGLE_FILE_SUFFIXES)


def detect_content_type(url: str) -> ContentType:
    """Guess the content type from the URL path; rules by default."""
    path = urlsplit(url).path.lower()
    for kind, markers in _TYPE_MARKERS:
        if any(marker in path for marker in markers):
            return kind
    return ContentType.RULE


def append_path(base_url: str, path: str) -> str:
    """Append ``path`` to the URL path, adding a separating slash."""
    parts = urlsplit(base_url)
    base_path = parts.path if parts.path.endswith("/") else parts.path + "/"
    return urlunsplit(parts._replace(path=base_path + path, query="", fragment=""))


def _string_list(value) -> list[str] | None:
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return value
    return None


class UrlLoader:
    """Loader for remote HTTP(S) content."""

    name = "url"

    def __init__(
        self,
        cache: UrlCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the loader.

        Args:
            cache: Shared body cache; a private one is created if None
            transport: httpx transport override
        """
        self.cache = cache if cache is not None else UrlCache()
        self._transport = transport

    def can_load(self, source: str) -> bool:
        """Check if this loader can handle the given source."""
        return is_url_source(source)

    async def load(self, source: str, options: UrlLoaderOptions | None = None) -> LoadResult:
        """
        Load content from a URL.

        Args:
            source: URL (url:https://... or https://...)
            options: Loading options

        Returns:
            LoadResult; failures are reported in ``errors``
        """
        options = options or UrlLoaderOptions()
        result = LoadResult(source=source)

        if not is_valid_url(source):
            result.add_error("file", source, "Invalid URL format")
            return result

        url = strip_url_prefix(source)
        logger.debug("Loading from URL: %s", url)

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=options.timeout,
            follow_redirects=options.follow_redirects,
        ) as client:
            if is_single_file(url):
                kind = detect_content_type(url)
                content = await self._fetch(client, url, options, result)
                if content is not None:
                    self._parse(kind, content, url, result)
            else:
                await self._load_directory(client, url, options, result)

        logger.debug("Loaded from URL: %s", result.summary())
        return result

    async def _load_directory(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        options: UrlLoaderOptions,
        result: LoadResult,
    ) -> None:
        index = await self._fetch_json(client, append_path(base_url, "index.json"), options, result)

        if isinstance(index, dict):
            files = []
            for key, (kind, dirname) in _INDEX_KEYS.items():
                for name in _string_list(index.get(key)) or []:
                    files.append((kind, append_path(base_url, f"{dirname}/{name}")))
            await self._load_files(client, files, options, result)
            return

        if index is not None:
            logger.debug("Index at %s is not a JSON object, probing directories", base_url)

        listings = await asyncio.gather(
            *(
                self._probe_kind(client, base_url, kind, options, result)
                for kind in _INDEX_DIRECTORIES
            )
        )
        files = [item for listing in listings for item in listing]
        await self._load_files(client, files, options, result)

        if result.is_empty and not result.errors:
            result.add_error(
                "directory",
                base_url,
                "No content found at URL. Expected single file (.md) or directory with index.json.",
            )

    async def _probe_kind(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        kind: ContentType,
        options: UrlLoaderOptions,
        result: LoadResult,
    ) -> list[tuple[ContentType, str]]:
        for dirname in _INDEX_DIRECTORIES[kind]:
            listing = await self._fetch_json(
                client, append_path(base_url, f"{dirname}/index.json"), options, result
            )
            names = _string_list(listing)
            if names is not None:
                return [(kind, append_path(base_url, f"{dirname}/{name}")) for name in names]
        return []

    async def _load_files(
        self,
        client: httpx.AsyncClient,
        files: list[tuple[ContentType, str]],
        options: UrlLoaderOptions,
        result: LoadResult,
    ) -> None:
        contents = await asyncio.gather(
            *(self._fetch(client, url, options, result) for _, url in files)
        )
        for (kind, url), content in zip(files, contents):
            if content is not None:
                self._parse(kind, content, url, result)

    async def _fetch_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        options: UrlLoaderOptions,
        result: LoadResult,
    ):
        content = await self._fetch(client, url, options, result, optional=True)
        if content is None:
            return None
        try:
            return json.loads(content)
        except ValueError:
            logger.debug("Not valid JSON: %s", url)
            return None

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        options: UrlLoaderOptions,
        result: LoadResult,
        optional: bool = False,
    ) -> str | None:
        """
        Fetch a body through the cache.

        Args:
            client: HTTP client
            url: URL to fetch
            options: Loading options
            result: Errors are recorded here
            optional: Treat 404 as absent instead of an error

        Returns:
            Body text, or None if unavailable
        """
        caching = options.use_cache and options.cache_ttl > 0

        if caching:
            cached = self.cache.get(url, options.cache_ttl, options.cache_dir)
            if cached is not None:
                logger.debug("Using cached content for: %s", url)
                return cached

        headers = {
            "Accept": "text/markdown, text/plain, application/json, */*",
            "User-Agent": USER_AGENT,
            **options.headers,
        }
        stored = self.cache.lookup(url)
        if stored is not None:
            if stored.etag:
                headers["If-None-Match"] = stored.etag
            if stored.last_modified:
                headers["If-Modified-Since"] = stored.last_modified

        try:
            response = await client.get(url, headers=headers)
        except httpx.TimeoutException:
            result.add_error("file", url, f"Request timeout after {options.timeout:g}s")
            return None
        except httpx.HTTPError as e:
            result.add_error("file", url, f"Network error: {e}")
            return None

        if response.status_code == 304 and stored is not None:
            logger.debug("Content not modified (304): %s", url)
            self.cache.refresh(url, options.cache_dir if caching else None)
            return stored.content

        if response.status_code == 404 and optional:
            logger.debug("Not found (404): %s", url)
            return None

        if not response.is_success:
            result.add_error(
                "file", url, f"HTTP {response.status_code}: {response.reason_phrase}"
            )
            return None

        content = response.text
        if caching:
            self.cache.set(
                url,
                content,
                etag=response.headers.get("etag"),
                last_modified=response.headers.get("last-modified"),
                cache_dir=options.cache_dir,
            )
        return content

    def _parse(self, kind: ContentType, content: str, url: str, result: LoadResult) -> None:
        try:
            result.add(parse_content(kind, content, url))
        except ParseError as e:
            result.add_error(kind.value, url, str(e))


def create_url_loader(cache: UrlCache | None = None) -> UrlLoader:
    """Create a UrlLoader instance."""
    return UrlLoader(cache)
