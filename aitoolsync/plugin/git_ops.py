"""
Git Operations for Plugin Sourcing.

This module provides the git subprocess calls used to fetch plugins and
discover versions.

Key features:
- Shallow clone of a branch/tag into the cache
- Fetch and hard-reset an existing clone
- List remote tags without cloning (ls-remote)
- Every call bounded by a timeout, prompts disabled
- Credentials redacted from errors and logs
"""

import asyncio
import contextlib
import logging
import os
import re
import shutil
from pathlib import Path

from aitoolsync.errors import (
    GitCommandError,
    GitTimeoutError,
    GitUnavailableError,
)
from aitoolsync.log import redact_credentials

logger = logging.getLogger(__name__)

# Default timeout for git operations (5 minutes)
DEFAULT_GIT_TIMEOUT = 5 * 60.0

# Default depth for shallow clones
DEFAULT_CLONE_DEPTH = 1

_TAG_RE = re.compile(r"refs/tags/(.+)$")


def _git_env() -> dict[str, str]:
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    return env


async def run_git(
    args: list[str],
    cwd: Path | None = None,
    timeout: float = DEFAULT_GIT_TIMEOUT,
) -> str:
    """
    Run a git command.

    Args:
        args: Arguments after ``git``
        cwd: Working directory
        timeout: Seconds before the process is killed

    Returns:
        Captured stdout

    Raises:
        GitUnavailableError: If git is not installed
        GitTimeoutError: If the command exceeds the timeout
        GitCommandError: If the command exits non-zero
    """
    command = redact_credentials(" ".join(["git", *args]))
    logger.debug("Running: %s", command)

    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            cwd=str(cwd) if cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=_git_env(),
        )
    except FileNotFoundError as e:
        raise GitUnavailableError("git command not found. Please install git.") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError as e:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
            await process.wait()
        raise GitTimeoutError(f"{command} timed out after {timeout:g}s") from e

    if process.returncode != 0:
        output = (stderr or stdout or b"").decode(errors="replace").strip()
        raise GitCommandError(
            f"{command} failed: {redact_credentials(output)}",
            returncode=process.returncode,
        )

    return stdout.decode(errors="replace")


async def is_git_available() -> bool:
    """Check whether the git binary can be executed."""
    try:
        await run_git(["--version"], timeout=10.0)
        return True
    except (GitUnavailableError, GitCommandError, GitTimeoutError):
        return False


async def clone_repo(
    clone_url: str,
    target_dir: Path,
    ref: str | None = None,
    depth: int = DEFAULT_CLONE_DEPTH,
    timeout: float = DEFAULT_GIT_TIMEOUT,
    origin_url: str | None = None,
) -> None:
    """
    Clone a repository.

    A failed clone removes the partially written target directory.

    Args:
        clone_url: Repository URL (may embed a token)
        target_dir: Target directory
        ref: Branch or tag to check out
        depth: Clone depth (0 for a full clone)
        timeout: Seconds before giving up
        origin_url: URL recorded as ``origin`` after cloning; keeps a token
            embedded in ``clone_url`` out of ``.git/config``

    Raises:
        GitError: If the clone fails
    """
    target_dir.parent.mkdir(parents=True, exist_ok=True)

    args = ["clone"]
    if depth > 0:
        args.extend(["--depth", str(depth)])
    if ref:
        args.extend(["--branch", ref])
    if ref or depth > 0:
        args.append("--single-branch")
    args.extend([clone_url, str(target_dir)])

    try:
        await run_git(args, timeout=timeout)
        if origin_url is not None and origin_url != clone_url:
            await run_git(
                ["remote", "set-url", "origin", origin_url], cwd=target_dir, timeout=timeout
            )
    except Exception:
        shutil.rmtree(target_dir, ignore_errors=True)
        raise


async def fetch_repo(
    repo_dir: Path,
    ref: str | None = None,
    depth: int = DEFAULT_CLONE_DEPTH,
    timeout: float = DEFAULT_GIT_TIMEOUT,
    remote: str = "origin",
) -> None:
    """
    Update an existing clone to the latest remote state.

    Args:
        repo_dir: Clone directory
        ref: Branch or tag to fetch
        depth: Fetch depth (0 for full history)
        timeout: Seconds before giving up per command
        remote: Remote name or URL to fetch from

    Raises:
        GitError: If any step fails
    """
    args = ["fetch"]
    if depth > 0:
        args.extend(["--depth", str(depth)])
    args.append(remote)
    if ref:
        args.append(ref)

    await run_git(args, cwd=repo_dir, timeout=timeout)
    await run_git(["reset", "--hard", "FETCH_HEAD"], cwd=repo_dir, timeout=timeout)


async def get_commit_sha(repo_dir: Path, timeout: float = 30.0) -> str | None:
    """
    Get the checked-out commit SHA.

    Returns:
        SHA string, or None if it cannot be determined
    """
    try:
        output = await run_git(["rev-parse", "HEAD"], cwd=repo_dir, timeout=timeout)
    except (GitCommandError, GitTimeoutError, GitUnavailableError) as e:
        logger.debug("Could not resolve HEAD in %s: %s", repo_dir, e)
        return None
    return output.strip() or None


def parse_tag_refs(output: str) -> list[str]:
    """
    Parse ``git ls-remote --tags`` output into tag names.

    Args:
        output: Lines of ``<sha>\\trefs/tags/<name>``

    Returns:
        Tag names in output order
    """
    tags = []
    for line in output.splitlines():
        match = _TAG_RE.search(line.strip())
        if match:
            tags.append(match.group(1))
    return tags


async def list_remote_tags(clone_url: str, timeout: float = 30.0) -> list[str]:
    """
    List tags of a remote repository without cloning it.

    Args:
        clone_url: Repository URL
        timeout: Seconds before giving up

    Returns:
        Unsorted list of tag names

    Raises:
        GitError: If ls-remote fails
    """
    output = await run_git(["ls-remote", "--tags", "--refs", clone_url], timeout=timeout)
    return parse_tag_refs(output)
