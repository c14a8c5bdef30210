"""
ai-tool-sync - Remote plugin sourcing and caching.

Resolves plugin sources (git hosts, git URLs, HTTP(S) endpoints), fetches
their content into a versioned on-disk cache and keeps cached plugins up to
date.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
