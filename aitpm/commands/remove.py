"""
aitpm remove command (-R).

Invalidate cached plugins.
"""

import asyncio
import sys
from typing import Any

from aitoolsync.loaders.source import is_local_source
from aitoolsync.plugin.cache import PluginCache
from aitpm.commands.common import open_cache, parse_target, settings_from_args


def remove_command(args: Any) -> int:
    """
    Execute remove command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    if not args.targets:
        print("Error: No targets specified", file=sys.stderr)
        print("Usage: aitpm -R <source>[@version]...", file=sys.stderr)
        return 1

    return asyncio.run(remove_async(args))


async def remove_async(args: Any) -> int:
    """Async remove implementation."""
    cache = await open_cache(settings_from_args(args))
    fail_count = 0

    for target in args.targets:
        if not await remove_plugin(cache, target):
            fail_count += 1

    return 0 if fail_count == 0 else 1


async def remove_plugin(cache: PluginCache, target: str) -> bool:
    """Invalidate one cached plugin; False if it is not cached."""
    source, version = parse_target(target)
    if is_local_source(source):
        print(f"{source}: local sources are not cached", file=sys.stderr)
        return False

    base_source, _, ref = source.partition("#")
    entry = cache.find_entry(base_source, version or ref or None)
    if entry is None:
        print(f"{target}: not cached", file=sys.stderr)
        return False

    await cache.invalidate(entry.source, entry.version)
    print(f"Removed {entry.id}")
    return True
