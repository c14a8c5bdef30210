"""
Content parsing for fetched plugin files.

Turns raw markdown with YAML frontmatter into typed records.
"""

from aitoolsync.parsers.content import (
    ContentType,
    ParsedContent,
    parse_command,
    parse_content,
    parse_hook,
    parse_persona,
    parse_rule,
)
from aitoolsync.parsers.frontmatter import ParseError, parse_frontmatter

__all__ = [
    "ContentType",
    "ParseError",
    "ParsedContent",
    "parse_command",
    "parse_content",
    "parse_frontmatter",
    "parse_hook",
    "parse_persona",
    "parse_rule",
]
