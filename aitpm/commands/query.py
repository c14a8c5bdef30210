"""
aitpm query command (-Q).

List cached plugins, or check them for updates (-Qu).
"""

import asyncio
import sys
from typing import Any

from aitoolsync.config import PluginSettings
from aitoolsync.plugin.update import PluginUpdateCheck, check_all_plugins_for_updates
from aitpm.commands.common import open_cache, settings_from_args


def query_command(args: Any) -> int:
    """
    Execute query command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    settings = settings_from_args(args)
    if args.upgrades:
        return asyncio.run(check_updates_async(args, settings))
    return asyncio.run(list_async(args, settings))


async def list_async(args: Any, settings: PluginSettings) -> int:
    """Print cached plugins, optionally filtered by source."""
    cache = await open_cache(settings)
    entries = sorted(cache.list_cached(), key=lambda e: e.id)
    if args.targets:
        entries = [e for e in entries if e.source in args.targets]

    if not entries:
        if args.verbose:
            print("No cached plugins")
        return 0

    for entry in entries:
        print(f"{entry.source} {entry.version or '-'} ({entry.id})")
    return 0


def format_check(check: PluginUpdateCheck) -> str:
    if check.error:
        return f"{check.source}: error: {check.error}"

    versions = check.versions
    current = versions.current_version or "unversioned"
    if check.has_update:
        return f"{check.source} {current} -> {versions.latest_version}"
    return f"{check.source} {current} (up to date)"


async def check_updates_async(args: Any, settings: PluginSettings) -> int:
    """Check cached (or the given) sources for newer tags."""
    cache = await open_cache(settings)
    checks = await check_all_plugins_for_updates(
        cache, args.targets or None, settings.to_check_options()
    )

    fail_count = 0
    for check in checks:
        if check.error:
            fail_count += 1
            print(format_check(check), file=sys.stderr)
        else:
            print(format_check(check))

    return 0 if fail_count == 0 else 1
