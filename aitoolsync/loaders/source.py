"""
Source Specifier Parser.

This module turns plugin source strings into normalized descriptors.

Key features:
- Hosting shorthands (github:, gitlab:, bitbucket:)
- git: prefix with host path or full URL
- SSH (git@host:owner/repo) and HTTPS .git URLs
- url: prefix and bare HTTP(S) URLs for the URL loader
- No network access, never raises on malformed input
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

URL_PREFIX = "url:"
GIT_PREFIX = "git:"

# Shorthand prefix -> host
PREFIX_HOST_MAP = {
    "github:": "github.com",
    "gitlab:": "gitlab.com",
    "bitbucket:": "bitbucket.org",
}

GIT_PREFIXES = (GIT_PREFIX, *PREFIX_HOST_MAP)

HTTPS_TEMPLATE = "https://{host}/{owner}/{repo}.git"
SSH_TEMPLATE = "git@{host}:{owner}/{repo}.git"

_SSH_RE = re.compile(r"^git@([^:]+):([^/]+)/(.+?)(?:\.git)?$")


class Provider(Enum):
    """Which fetcher handles a source."""

    GIT = "git"
    URL = "url"


@dataclass(frozen=True)
class SourceDescriptor:
    """
    Normalized plugin source.

    Attributes:
        provider: Fetcher discriminant
        host: Hosting provider host (e.g. github.com)
        owner: Repository owner/organization (git only)
        repo: Repository name (git only)
        ref: Branch, tag or commit
        subpath: Repository-relative directory to load from
        clone_url: URL passed to git clone (git only)
        use_ssh: Whether clone_url is an SSH URL
        raw_source: Original source string
        url: Normalized HTTP(S) URL (url only)
    """

    provider: Provider
    host: str
    owner: str
    repo: str
    ref: str | None
    subpath: str | None
    clone_url: str
    use_ssh: bool
    raw_source: str
    url: str | None = None

    @property
    def is_git(self) -> bool:
        return self.provider is Provider.GIT


def _split_ref(source: str) -> tuple[str, str | None]:
    path_part, _, ref = source.partition("#")
    return path_part, ref or None


def _clone_url(host: str, owner: str, repo: str, use_ssh: bool) -> str:
    template = SSH_TEMPLATE if use_ssh else HTTPS_TEMPLATE
    return template.format(host=host, owner=owner, repo=repo)


def _git_descriptor(
    raw_source: str,
    host: str,
    owner: str,
    repo: str,
    ref: str | None,
    subpath: str | None,
    clone_url: str,
    use_ssh: bool,
) -> SourceDescriptor | None:
    if not host or not owner or not repo:
        return None
    return SourceDescriptor(
        provider=Provider.GIT,
        host=host,
        owner=owner,
        repo=repo,
        ref=ref,
        subpath=subpath or None,
        clone_url=clone_url,
        use_ssh=use_ssh,
        raw_source=raw_source,
    )


def _parse_shorthand(
    source: str, prefix: str, host: str, use_ssh: bool
) -> SourceDescriptor | None:
    # github:owner/repo/subpath#ref
    path_part, ref = _split_ref(source[len(prefix):])
    parts = path_part.split("/")
    if len(parts) < 2:
        return None

    owner, repo = parts[0], parts[1]
    subpath = "/".join(parts[2:]) if len(parts) > 2 else None

    return _git_descriptor(
        source, host, owner, repo, ref, subpath,
        _clone_url(host, owner, repo, use_ssh), use_ssh,
    )


def _parse_git_prefix(source: str, use_ssh: bool) -> SourceDescriptor | None:
    # git:github.com/owner/repo/subpath#ref or git:https://host/owner/repo.git#ref
    without_prefix = source[len(GIT_PREFIX):]
    if without_prefix.startswith(("https://", "http://")):
        return _parse_https_url(without_prefix, raw_source=source)

    path_part, ref = _split_ref(without_prefix)
    parts = path_part.split("/")
    if len(parts) < 3:
        return None

    host, owner = parts[0], parts[1]
    repo = parts[2].removesuffix(".git")
    subpath = "/".join(parts[3:]) if len(parts) > 3 else None

    return _git_descriptor(
        source, host, owner, repo, ref, subpath,
        _clone_url(host, owner, repo, use_ssh), use_ssh,
    )


def _parse_ssh_url(source: str) -> SourceDescriptor | None:
    # git@github.com:owner/repo.git#ref
    url_part, ref = _split_ref(source)
    match = _SSH_RE.match(url_part)
    if not match:
        return None

    host, owner, repo = match.groups()
    clone_url = url_part if url_part.endswith(".git") else f"{url_part}.git"

    return _git_descriptor(
        source, host, owner, repo.removesuffix(".git"), ref, None, clone_url, True
    )


def _parse_https_url(source: str, raw_source: str | None = None) -> SourceDescriptor | None:
    # https://github.com/owner/repo.git#ref
    url_part, ref = _split_ref(source)
    try:
        parts = urlsplit(url_part)
    except ValueError:
        return None

    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 2:
        return None

    owner = segments[0]
    repo = segments[1].removesuffix(".git")
    subpath = "/".join(segments[2:]) if len(segments) > 2 else None
    clone_url = url_part if url_part.endswith(".git") else f"{url_part}.git"

    return _git_descriptor(
        raw_source or source, parts.hostname or parts.netloc, owner, repo,
        ref, subpath, clone_url, False,
    )


def _parse_url_source(source: str) -> SourceDescriptor | None:
    url = source[len(URL_PREFIX):] if source.startswith(URL_PREFIX) else source
    try:
        parts = urlsplit(url)
    except ValueError:
        return None

    if parts.scheme not in ("http", "https") or not parts.hostname:
        return None

    return SourceDescriptor(
        provider=Provider.URL,
        host=parts.hostname,
        owner="",
        repo="",
        ref=None,
        subpath=None,
        clone_url="",
        use_ssh=False,
        raw_source=source,
        url=url,
    )


def _looks_like_git_url(source: str) -> bool:
    return "://" in source and ".git" in source


def parse_source(source: str, use_ssh: bool = False) -> SourceDescriptor | None:
    """
    Parse a plugin source string.

    Args:
        source: Source specifier (e.g. ``github:acme/rules#v1.0.0``)
        use_ssh: Prefer SSH clone URLs for hosting shorthands

    Returns:
        SourceDescriptor, or None if the source is malformed or unrecognized
    """
    if not isinstance(source, str) or not source:
        return None

    for prefix, host in PREFIX_HOST_MAP.items():
        if source.startswith(prefix):
            return _parse_shorthand(source, prefix, host, use_ssh)

    if source.startswith(GIT_PREFIX):
        return _parse_git_prefix(source, use_ssh)

    if source.startswith("git@"):
        return _parse_ssh_url(source)

    if source.startswith(URL_PREFIX):
        return _parse_url_source(source)

    if _looks_like_git_url(source):
        return _parse_https_url(source)

    if source.startswith(("http://", "https://")):
        return _parse_url_source(source)

    return None


def is_git_source(source: str) -> bool:
    """Check whether the git loader handles this source."""
    descriptor = parse_source(source)
    return descriptor is not None and descriptor.provider is Provider.GIT


def is_url_source(source: str) -> bool:
    """Check whether the URL loader handles this source."""
    descriptor = parse_source(source)
    return descriptor is not None and descriptor.provider is Provider.URL


def is_local_source(source: str) -> bool:
    """Check whether the source is a filesystem path."""
    return source.startswith(("./", "../")) or os.path.isabs(source)
