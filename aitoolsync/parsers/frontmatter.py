"""
Frontmatter Parser.

Splits a leading ``---`` YAML block from markdown content.
"""

from dataclasses import dataclass
from typing import Any

import yaml

DELIMITER = "---"


class ParseError(Exception):
    """Raised when content cannot be parsed."""

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(message)
        self.file_path = file_path


@dataclass
class ParsedFrontmatter:
    """
    Result of frontmatter extraction.

    Attributes:
        data: Parsed YAML mapping (empty if no frontmatter)
        content: Markdown body after the closing delimiter
    """

    data: dict[str, Any]
    content: str

    @property
    def is_empty(self) -> bool:
        return not self.data


def has_frontmatter(text: str) -> bool:
    """Check if content starts with a frontmatter delimiter."""
    return text.lstrip().startswith(DELIMITER)


def parse_frontmatter(text: str, file_path: str | None = None) -> ParsedFrontmatter:
    """
    Parse frontmatter from markdown content.

    Args:
        text: Raw file content
        file_path: Path or URL used in error messages

    Returns:
        ParsedFrontmatter

    Raises:
        ParseError: If the YAML block is unterminated, invalid, or not a mapping
    """
    if not has_frontmatter(text):
        return ParsedFrontmatter(data={}, content=text)

    stripped = text.lstrip()
    lines = stripped.splitlines(keepends=True)

    end_index = None
    for i, line in enumerate(lines[1:], start=1):
        if line.rstrip() == DELIMITER:
            end_index = i
            break

    if end_index is None:
        raise ParseError("Unterminated frontmatter block", file_path)

    block = "".join(lines[1:end_index])
    body = "".join(lines[end_index + 1:])

    try:
        data = yaml.safe_load(block) if block.strip() else {}
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML frontmatter: {e}", file_path) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("Frontmatter must be a mapping", file_path)

    return ParsedFrontmatter(data=data, content=body.lstrip("\n"))
