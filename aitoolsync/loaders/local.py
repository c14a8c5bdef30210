"""
Local Loader.

Loads rules, personas, commands and hooks from a directory tree:

    source/
    ├── rules/
    ├── personas/ (or agents/)
    ├── commands/
    └── hooks/
"""

import asyncio
import logging
from pathlib import Path

from aitoolsync.loaders.base import DEFAULT_DIRECTORIES, LoaderOptions, LoadResult
from aitoolsync.parsers import ContentType, ParseError, parse_content

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown")


def _find_markdown_files(content_dir: Path) -> list[Path]:
    files = []
    for path in sorted(content_dir.rglob("*")):
        relative = path.relative_to(content_dir)
        # Skip .git, .local-overrides and other dot-directories
        if any(part.startswith(".") for part in relative.parts):
            continue
        if path.is_file() and path.suffix.lower() in MARKDOWN_SUFFIXES:
            files.append(path)
    return files


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


class LocalLoader:
    """Loader for local filesystem directories."""

    name = "local"

    def can_load(self, source: str) -> bool:
        """
        Check if this loader can handle the given source.

        Rejects URLs and protocol prefixes; accepts paths.
        """
        if "://" in source or source.startswith("git@"):
            return False
        prefix, sep, _ = source.partition(":")
        # Windows drive letters are the only acceptable colon
        return not sep or len(prefix) == 1

    async def load(self, source: str, options: LoaderOptions | None = None) -> LoadResult:
        """
        Load content from a local directory.

        Args:
            source: Directory path
            options: Loading options

        Returns:
            LoadResult; a missing directory yields an empty result
        """
        result = LoadResult(source=source)
        base_path = (options.base_path if options else None) or Path.cwd()
        source_path = Path(source)
        if not source_path.is_absolute():
            source_path = base_path / source_path

        logger.debug("Loading from: %s", source_path)

        if not source_path.is_dir():
            logger.debug("Source directory does not exist: %s", source_path)
            return result

        await asyncio.gather(
            *(self._load_kind(source_path, kind, result) for kind in DEFAULT_DIRECTORIES)
        )

        logger.debug("Loaded from %s: %s", source_path, result.summary())
        return result

    async def _load_kind(self, source_path: Path, kind: ContentType, result: LoadResult) -> None:
        for dirname in DEFAULT_DIRECTORIES[kind]:
            content_dir = source_path / dirname
            if not content_dir.is_dir():
                continue

            try:
                files = await asyncio.to_thread(_find_markdown_files, content_dir)
            except OSError as e:
                result.add_error("directory", str(content_dir), f"Failed to read directory: {e}")
                continue

            for file_path in files:
                try:
                    text = await asyncio.to_thread(_read_text, file_path)
                    result.add(parse_content(kind, text, str(file_path)))
                except (OSError, UnicodeDecodeError, ParseError) as e:
                    result.add_error(kind.value, str(file_path), str(e))
