"""
aitpm upgrade command (-U).

Update cached plugins to a given version or to the newest tag.
"""

import asyncio
import sys
from typing import Any

from aitoolsync.config import PluginSettings
from aitoolsync.errors import PluginError
from aitoolsync.plugin.cache import PluginCache
from aitoolsync.plugin.update import cached_sources, check_for_updates, update_plugin
from aitpm.commands.common import open_cache, parse_target, settings_from_args


def upgrade_command(args: Any) -> int:
    """
    Execute upgrade command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    return asyncio.run(upgrade_async(args, settings_from_args(args)))


async def upgrade_async(args: Any, settings: PluginSettings) -> int:
    """Async upgrade implementation."""
    cache = await open_cache(settings)
    targets = args.targets or cached_sources(cache)

    if not targets:
        print("No cached plugins to upgrade")
        return 0

    fail_count = 0
    for target in targets:
        try:
            await upgrade_plugin(cache, target, settings)
        except PluginError as e:
            print(f"Failed to upgrade {target}: {e}", file=sys.stderr)
            fail_count += 1

    return 0 if fail_count == 0 else 1


async def upgrade_plugin(cache: PluginCache, target: str, settings: PluginSettings) -> None:
    """
    Upgrade a single plugin.

    Args:
        cache: Initialized plugin cache
        target: ``source[@version]``; the newest tag if no version is given
        settings: Plugin settings

    Raises:
        PluginError: If the check or the update fails
    """
    source, version = parse_target(target)

    if version is None:
        check = await check_for_updates(cache, source, settings.to_check_options())
        if not check.has_update:
            current = check.versions.current_version or "unversioned"
            print(f"{source} is up to date ({current})")
            return
        version = check.versions.latest_version

    result = await update_plugin(cache, source, version, settings.to_git_options())
    print(f"{result.source}: {result.previous_version or 'unversioned'} -> {result.new_version}")
