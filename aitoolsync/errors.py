"""
Error taxonomy for plugin sourcing and caching.

Loaders never let these escape from ``load()``; they are converted into
``LoadError`` records. Batch operations capture them per item. Everything
else propagates them to the caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from aitoolsync.plugin.update import UpdateState


class PluginError(Exception):
    """Base exception for plugin sourcing errors."""

    pass


class InvalidSourceError(PluginError):
    """Raised when a source specifier cannot be parsed."""

    pass


class LocalSourceUnsupportedError(PluginError):
    """Raised when a remote-only operation is requested on a filesystem path."""

    pass


class SubpathMissingError(PluginError):
    """Raised when a fetched repository lacks the requested subdirectory."""

    pass


class CacheIntegrityError(PluginError):
    """Raised when the cache manifest cannot be read or has the wrong shape."""

    pass


class FetchError(PluginError):
    """Base exception for content retrieval failures."""

    pass


class NetworkError(FetchError):
    """Connection-level failure. Retryable by the caller."""

    pass


class FetchTimeoutError(FetchError):
    """A bounded operation exceeded its deadline. Retryable by the caller."""

    pass


class NotFoundError(FetchError):
    """Remote resource does not exist (HTTP 404)."""

    pass


class GitError(PluginError):
    """Base exception for git-related errors."""

    pass


class GitUnavailableError(GitError):
    """Raised when the git binary cannot be executed."""

    pass


class GitCommandError(GitError):
    """Raised when a git command exits with a non-zero status."""

    def __init__(self, message: str, returncode: int | None = None):
        super().__init__(message)
        self.returncode = returncode


class GitTimeoutError(GitError, FetchTimeoutError):
    """Raised when a git command exceeds its timeout."""

    pass


class UpdateError(PluginError):
    """
    Raised when a plugin update fails.

    Attributes:
        step: State of the update sequence that failed
    """

    def __init__(self, message: str, step: UpdateState | None = None):
        super().__init__(message)
        self.step = step
