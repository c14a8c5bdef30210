"""
Content parsers for rules, personas, commands and hooks.

These are intentionally thin: they extract frontmatter and the body, and
default ``name`` from the file name. Target-specific interpretation happens
elsewhere.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import urlsplit

from aitoolsync.parsers.frontmatter import ParseError, parse_frontmatter


class ContentType(Enum):
    """Kinds of plugin content."""

    RULE = "rule"
    PERSONA = "persona"
    COMMAND = "command"
    HOOK = "hook"


@dataclass
class ParsedContent:
    """
    A parsed content file.

    Attributes:
        kind: Content type
        frontmatter: Frontmatter mapping (always contains ``name``)
        content: Markdown body
        file_path: Path or URL the content came from
    """

    kind: ContentType
    frontmatter: dict[str, Any]
    content: str
    file_path: str | None = None

    @property
    def name(self) -> str:
        return str(self.frontmatter["name"])


def _stem(file_path: str | None) -> str | None:
    if not file_path:
        return None
    path = urlsplit(file_path).path if "://" in file_path else file_path
    stem = PurePosixPath(path.replace("\\", "/")).stem
    return stem or None


def parse_content(kind: ContentType, text: str, file_path: str | None = None) -> ParsedContent:
    """
    Parse a content file of the given kind.

    Args:
        kind: Content type
        text: Raw file content
        file_path: Path or URL the content came from

    Returns:
        ParsedContent

    Raises:
        ParseError: If frontmatter is invalid or no name can be determined
    """
    parsed = parse_frontmatter(text, file_path)
    frontmatter = dict(parsed.data)

    if not frontmatter.get("name"):
        stem = _stem(file_path)
        if stem is None:
            raise ParseError(f"{kind.value} has no name", file_path)
        frontmatter["name"] = stem

    return ParsedContent(
        kind=kind,
        frontmatter=frontmatter,
        content=parsed.content,
        file_path=file_path,
    )


def parse_rule(text: str, file_path: str | None = None) -> ParsedContent:
    return parse_content(ContentType.RULE, text, file_path)


def parse_persona(text: str, file_path: str | None = None) -> ParsedContent:
    return parse_content(ContentType.PERSONA, text, file_path)


def parse_command(text: str, file_path: str | None = None) -> ParsedContent:
    return parse_content(ContentType.COMMAND, text, file_path)


def parse_hook(text: str, file_path: str | None = None) -> ParsedContent:
    return parse_content(ContentType.HOOK, text, file_path)
