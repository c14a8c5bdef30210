"""
aitpm sync command (-S).

Fetch plugin sources into the cache, or clear the cache (-Sc).
"""

import asyncio
import shutil
import sys
from typing import Any

from aitoolsync.config import URL_CACHE_SUBDIR, PluginSettings
from aitoolsync.errors import PluginError
from aitoolsync.loaders import GitLoader, LoaderOptions, UrlCache, UrlLoader, get_loader
from aitoolsync.plugin.cache import PluginCache
from aitpm.commands.common import open_cache, print_load_errors, settings_from_args


def sync_command(args: Any) -> int:
    """
    Execute sync command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = settings_from_args(args)

    if args.clean:
        return asyncio.run(clean_async(settings))

    if not args.targets:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: aitpm -S <source>...", file=sys.stderr)
        return 1

    return asyncio.run(sync_async(args, settings))


async def clean_async(settings: PluginSettings) -> int:
    """Remove every cached plugin and cached URL body."""
    cache = await open_cache(settings)
    await cache.clear_all()
    await asyncio.to_thread(
        shutil.rmtree, settings.cache_root() / URL_CACHE_SUBDIR, ignore_errors=True
    )
    print(f"Cleared cache at {settings.cache_root()}")
    return 0


async def sync_async(args: Any, settings: PluginSettings) -> int:
    """Async sync implementation."""
    cache = await open_cache(settings)
    url_cache = UrlCache()
    fail_count = 0

    for target in args.targets:
        try:
            ok = await sync_source(target, settings, cache, url_cache)
        except PluginError as e:
            print(f"Failed to fetch {target}: {e}", file=sys.stderr)
            ok = False
        if not ok:
            fail_count += 1

    if args.verbose:
        print(f"\nFetched: {len(args.targets) - fail_count}, Failed: {fail_count}")

    return 0 if fail_count == 0 else 1


async def sync_source(
    target: str,
    settings: PluginSettings,
    cache: PluginCache,
    url_cache: UrlCache,
) -> bool:
    """
    Fetch a single source.

    Returns:
        True if the source loaded without errors

    Raises:
        InvalidSourceError: If no loader handles the source
    """
    loader = get_loader(target, url_cache)

    if isinstance(loader, GitLoader):
        options = settings.to_git_options()
        options.cache = cache
    elif isinstance(loader, UrlLoader):
        options = settings.to_url_options()
    else:
        options = LoaderOptions()

    result = await loader.load(target, options)

    print(f"{target}: {result.summary()}")
    if not result.ok:
        print_load_errors(result)
    return result.ok
