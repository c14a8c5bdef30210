"""
Tests for frontmatter and content parsing.
"""

import pytest

from aitoolsync.parsers import (
    ContentType,
    ParseError,
    parse_command,
    parse_frontmatter,
    parse_persona,
    parse_rule,
)
from aitoolsync.parsers.frontmatter import has_frontmatter


class TestFrontmatter:
    """Test frontmatter extraction."""

    def test_parse_frontmatter(self):
        """Should split YAML from the body."""
        parsed = parse_frontmatter("---\nname: style\nglobs:\n  - '*.py'\n---\n\n# Body\n")

        assert parsed.data == {"name": "style", "globs": ["*.py"]}
        assert parsed.content == "# Body\n"

    def test_no_frontmatter(self):
        """Should return the whole text as body."""
        parsed = parse_frontmatter("# Just markdown\n")

        assert parsed.is_empty
        assert parsed.content == "# Just markdown\n"
        assert not has_frontmatter("# Just markdown\n")

    def test_empty_block(self):
        """Should accept an empty YAML block."""
        parsed = parse_frontmatter("---\n---\nbody")

        assert parsed.data == {}
        assert parsed.content == "body"

    def test_unterminated(self):
        """Should reject a block without closing delimiter."""
        with pytest.raises(ParseError, match="Unterminated"):
            parse_frontmatter("---\nname: x\n")

    def test_invalid_yaml(self):
        """Should reject invalid YAML."""
        with pytest.raises(ParseError, match="Invalid YAML"):
            parse_frontmatter("---\nname: [unclosed\n---\n")

    def test_non_mapping(self):
        """Should reject YAML that is not a mapping."""
        with pytest.raises(ParseError, match="mapping"):
            parse_frontmatter("---\n- a\n- b\n---\n")


class TestContent:
    """Test typed content parsing."""

    def test_name_from_frontmatter(self):
        """Should keep an explicit name."""
        rule = parse_rule("---\nname: typescript\n---\nUse strict mode.", "rules/ts.md")

        assert rule.kind is ContentType.RULE
        assert rule.name == "typescript"
        assert rule.content == "Use strict mode."

    def test_name_from_file_stem(self):
        """Should default the name to the file stem."""
        persona = parse_persona("You review code.", "personas/reviewer.md")

        assert persona.name == "reviewer"

    def test_name_from_url(self):
        """Should default the name from a URL path."""
        command = parse_command("Run tests.", "https://example.com/commands/test.md?x=1")

        assert command.name == "test"

    def test_missing_name(self):
        """Should fail when no name can be determined."""
        with pytest.raises(ParseError, match="no name"):
            parse_rule("body only")
