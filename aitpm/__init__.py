"""
aitpm - ai-tool-sync plugin manager.

Command-line interface for fetching, listing, checking and updating cached
plugin sources.
"""

from aitoolsync import __version__

__all__ = ["__version__"]
