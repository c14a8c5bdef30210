"""
aitpm CLI - ai-tool-sync plugin manager.

Pacman-style interface for the plugin cache.

Usage:
    aitpm -S <source>...             Fetch sources into the cache
    aitpm -Sc                        Clear the cache
    aitpm -R <source>[@version]...   Remove cached plugins
    aitpm -Q [source...]             List cached plugins
    aitpm -Qu [source...]            Check for updates
    aitpm -U [source[@version]...]   Update plugins
    aitpm --init-config              Write a default config file
"""

import argparse
import sys
from pathlib import Path

from aitoolsync.config import ConfigError, write_default_config
from aitoolsync.errors import PluginError
from aitoolsync.log import setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser with pacman-style flags."""
    parser = argparse.ArgumentParser(
        prog="aitpm",
        description="ai-tool-sync plugin manager - Pacman-style plugin cache manager",
        add_help=False,
    )

    # Operation flags (mutually exclusive)
    ops = parser.add_mutually_exclusive_group()
    ops.add_argument("-S", "--sync", action="store_true", help="Fetch sources")
    ops.add_argument("-R", "--remove", action="store_true", help="Remove cached plugins")
    ops.add_argument("-U", "--upgrade", action="store_true", help="Update plugins")
    ops.add_argument("-Q", "--query", action="store_true", help="Query cache")
    ops.add_argument("--init-config", action="store_true", help="Write default config")
    ops.add_argument("-h", "--help", action="store_true", help="Show help")

    # Sub-flags
    parser.add_argument("-c", "--clean", action="store_true", help="Clear cache (-Sc)")
    parser.add_argument("-u", "--upgrades", action="store_true", help="Check updates (-Qu)")

    # Common options
    parser.add_argument("--cache-dir", help="Base cache directory")
    parser.add_argument("--config", help="Config file (default .ai-tool-sync/config.toml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    # Positional arguments
    parser.add_argument("targets", nargs="*", help="Plugin sources")

    return parser


def print_help():
    """Print help message."""
    help_text = """
aitpm - ai-tool-sync plugin manager

Usage:
    aitpm -S <source>...             Fetch sources into the cache
    aitpm -Sc                        Clear the cache
    aitpm -R <source>[@version]...   Remove cached plugins
    aitpm -Q [source...]             List cached plugins
    aitpm -Qu [source...]            Check for updates
    aitpm -U [source[@version]...]   Update plugins
    aitpm --init-config              Write a default config file

Sources:
    github:owner/repo[/path][#ref]   gitlab:..., bitbucket:...
    git:host/owner/repo[#ref]        git@host:owner/repo.git[#ref]
    https://host/owner/repo.git      url:https://example.com/rules/

Options:
    --cache-dir <dir>                Base cache directory
    --config <file>                  Config file
    -v, --verbose                    Verbose output
    -h, --help                       Show this help
"""
    print(help_text.strip())


def init_config_command(args) -> int:
    path = Path(args.config) if args.config else None
    written = write_default_config(path)
    print(f"Wrote {written}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for aitpm CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        # Show help
        if args.help or not (
            args.sync or args.remove or args.upgrade or args.query or args.init_config
        ):
            print_help()
            return 0

        # Route to appropriate command
        if args.init_config:
            return init_config_command(args)

        elif args.sync:
            # -S: Fetch / -Sc: Clean
            from aitpm.commands.sync import sync_command

            return sync_command(args)

        elif args.remove:
            # -R: Remove
            from aitpm.commands.remove import remove_command

            return remove_command(args)

        elif args.upgrade:
            # -U: Upgrade
            from aitpm.commands.upgrade import upgrade_command

            return upgrade_command(args)

        elif args.query:
            # -Q: Query / -Qu: Check updates
            from aitpm.commands.query import query_command

            return query_command(args)

    except (PluginError, ConfigError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130
    except Exception as e:
        print(f"Unexpected error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
