"""
Plugin sourcing - cache, version discovery and updates.

This package handles:
- Git subprocess operations
- The versioned on-disk plugin cache
- Remote version discovery and comparison
- Update swaps that keep local overrides
"""

__all__ = []
