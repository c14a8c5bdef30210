"""
Version comparison for plugin tags.

Tags are compared as semantic versions after stripping a leading ``v``.
Tags that are not semver fall back to plain string ordering; such orderings
are not guaranteed to be transitive when mixed with semver tags.
"""

import functools
import re

_SEMVER_RE = re.compile(
    r"^(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z.-]+))?"
    r"(?:\+[0-9A-Za-z.-]+)?$"
)


class VersionError(ValueError):
    """Raised when a version string is not a semantic version."""

    pass


def normalize_version(version: str | None) -> str | None:
    """
    Strip a leading ``v``.

    Returns:
        Normalized version, or None for empty input
    """
    if not version:
        return None
    return version[1:] if version.startswith("v") else version


def _is_valid_semver(version: str) -> bool:
    return bool(_SEMVER_RE.match(version))


def _parse_semver(version: str) -> tuple[tuple[int, int, int], list[str] | None]:
    """
    Parse a semantic version string.

    Args:
        version: Normalized version (e.g. "1.2.3" or "1.2.3-rc.1")

    Returns:
        ((major, minor, patch), prerelease identifiers or None)

    Raises:
        VersionError: If the string is not semver
    """
    match = _SEMVER_RE.match(version)
    if not match:
        raise VersionError(f"Not a semantic version: {version}")

    major, minor, patch, prerelease = match.groups()
    core = (int(major), int(minor or 0), int(patch or 0))
    return core, prerelease.split(".") if prerelease else None


def _compare_identifiers(a: str, b: str) -> int:
    if a.isdigit() and b.isdigit():
        return (int(a) > int(b)) - (int(a) < int(b))
    if a.isdigit():
        return -1
    if b.isdigit():
        return 1
    return (a > b) - (a < b)


def compare_semver(v1: str, v2: str) -> int:
    """
    Compare two semantic versions.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2

    Raises:
        VersionError: If either side is not semver
    """
    core1, pre1 = _parse_semver(v1)
    core2, pre2 = _parse_semver(v2)

    if core1 != core2:
        return 1 if core1 > core2 else -1

    # A release outranks its prereleases
    if pre1 is None or pre2 is None:
        return (pre1 is None) - (pre2 is None)

    for a, b in zip(pre1, pre2):
        result = _compare_identifiers(a, b)
        if result:
            return result
    return (len(pre1) > len(pre2)) - (len(pre1) < len(pre2))


def compare_versions(a: str, b: str) -> int:
    """
    Compare two version tags with best-effort semver semantics.

    Falls back to string comparison when either side is not semver.
    """
    norm_a = normalize_version(a)
    norm_b = normalize_version(b)

    if not norm_a or not norm_b:
        return 0

    try:
        return compare_semver(norm_a, norm_b)
    except VersionError:
        return (norm_a > norm_b) - (norm_a < norm_b)


def sort_versions_desc(versions: list[str]) -> list[str]:
    """Sort tags from newest to oldest."""
    return sorted(versions, key=functools.cmp_to_key(compare_versions), reverse=True)


def has_newer_version(current: str | None, latest: str | None) -> bool:
    """
    Determine whether ``latest`` is newer than ``current``.

    Args:
        current: Installed version (None if unknown)
        latest: Newest remote version (None if none)

    Returns:
        True if an update is available
    """
    if not latest:
        return False
    if not current:
        return True

    norm_current = normalize_version(current)
    norm_latest = normalize_version(latest)

    if not _is_valid_semver(norm_current) or not _is_valid_semver(norm_latest):
        return norm_latest != norm_current

    return compare_semver(norm_latest, norm_current) > 0
