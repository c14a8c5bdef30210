"""
Helpers shared by aitpm commands.
"""

import dataclasses
import sys
from pathlib import Path
from typing import Any

from aitoolsync.config import PluginSettings, load_settings
from aitoolsync.loaders import LoadResult
from aitoolsync.plugin.cache import PluginCache, create_plugin_cache


def settings_from_args(args: Any) -> PluginSettings:
    """
    Load settings, applying command-line overrides.

    Raises:
        ConfigError: If the settings file is invalid
    """
    settings = load_settings(Path(args.config) if args.config else None)
    if args.cache_dir:
        settings = dataclasses.replace(settings, cache_dir=args.cache_dir)
    return settings


async def open_cache(settings: PluginSettings) -> PluginCache:
    return await create_plugin_cache(settings.cache_root())


def parse_target(target: str) -> tuple[str, str | None]:
    """
    Split ``source@version``.

    The ``@`` of ``git@host:...`` and of scoped names is not a version
    separator; a version never contains ``/`` or ``:``.

    Returns:
        Tuple of (source, version)
    """
    source, sep, version = target.rpartition("@")
    if not sep or not source or not version or "/" in version or ":" in version:
        return target, None
    return source, version


def print_load_errors(result: LoadResult) -> None:
    for error in result.errors:
        print(f"  {error.kind}: {error.path}: {error.message}", file=sys.stderr)
