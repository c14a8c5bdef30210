"""
Loaders for plugin content.

Each loader resolves one kind of source (git repository, HTTP(S) endpoint,
local directory) into a ``LoadResult``.
"""

from aitoolsync.errors import InvalidSourceError
from aitoolsync.loaders.base import Loader, LoaderOptions, LoadError, LoadResult
from aitoolsync.loaders.git import GitLoader, GitLoaderOptions, create_git_loader
from aitoolsync.loaders.local import LocalLoader
from aitoolsync.loaders.source import (
    Provider,
    SourceDescriptor,
    is_git_source,
    is_local_source,
    is_url_source,
    parse_source,
)
from aitoolsync.loaders.url import UrlCache, UrlLoader, UrlLoaderOptions, create_url_loader


def get_loader(source: str, url_cache: UrlCache | None = None) -> Loader:
    """
    Pick the loader for a source.

    Args:
        source: Source specifier
        url_cache: Cache shared by URL loaders

    Returns:
        GitLoader, UrlLoader or LocalLoader

    Raises:
        InvalidSourceError: If no loader handles the source
    """
    if is_git_source(source):
        return create_git_loader()
    if is_url_source(source):
        return create_url_loader(url_cache)

    local = LocalLoader()
    if local.can_load(source):
        return local

    raise InvalidSourceError(f"Unsupported source: {source}")


__all__ = [
    "GitLoader",
    "GitLoaderOptions",
    "LoadError",
    "LoadResult",
    "Loader",
    "LoaderOptions",
    "LocalLoader",
    "Provider",
    "SourceDescriptor",
    "UrlCache",
    "UrlLoader",
    "UrlLoaderOptions",
    "get_loader",
    "is_git_source",
    "is_local_source",
    "is_url_source",
    "parse_source",
]
