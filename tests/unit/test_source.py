"""
Tests for source specifier parsing.

This test suite covers:
1. Hosting shorthands (github:, gitlab:, bitbucket:)
2. git: prefix, SSH and HTTPS git URLs
3. url: prefix and bare HTTP(S) URLs
4. Malformed input
5. Source predicates
6. Loader selection
"""

import pytest

from aitoolsync.errors import InvalidSourceError
from aitoolsync.loaders import GitLoader, LocalLoader, UrlCache, UrlLoader, get_loader
from aitoolsync.loaders.source import (
    Provider,
    is_git_source,
    is_local_source,
    is_url_source,
    parse_source,
)


class TestShorthands:
    """Test hosting shorthand prefixes."""

    def test_github_with_ref(self):
        """Should parse github:owner/repo#ref."""
        descriptor = parse_source("github:acme/rules#v1.0.0")

        assert descriptor is not None
        assert descriptor.provider is Provider.GIT
        assert descriptor.host == "github.com"
        assert descriptor.owner == "acme"
        assert descriptor.repo == "rules"
        assert descriptor.ref == "v1.0.0"
        assert descriptor.subpath is None
        assert descriptor.clone_url == "https://github.com/acme/rules.git"
        assert descriptor.use_ssh is False
        assert descriptor.raw_source == "github:acme/rules#v1.0.0"

    def test_github_ssh(self):
        """Should build an SSH clone URL when requested."""
        descriptor = parse_source("github:acme/rules", use_ssh=True)

        assert descriptor.clone_url == "git@github.com:acme/rules.git"
        assert descriptor.use_ssh is True

    def test_gitlab_subpath(self):
        """Should keep segments after owner/repo as subpath."""
        descriptor = parse_source("gitlab:group/project/configs/ai#main")

        assert descriptor.host == "gitlab.com"
        assert descriptor.repo == "project"
        assert descriptor.subpath == "configs/ai"
        assert descriptor.ref == "main"

    def test_bitbucket(self):
        """Should map bitbucket: to bitbucket.org."""
        descriptor = parse_source("bitbucket:team/repo")

        assert descriptor.host == "bitbucket.org"
        assert descriptor.clone_url == "https://bitbucket.org/team/repo.git"

    def test_empty_ref_is_absent(self):
        """Should treat a trailing # as no ref."""
        assert parse_source("github:acme/rules#").ref is None


class TestGitUrls:
    """Test git: prefix and raw git URLs."""

    def test_git_prefix_with_host(self):
        """Should parse git:host/owner/repo.git#ref."""
        descriptor = parse_source("git:git.example.com/team/repo.git#main")

        assert descriptor.host == "git.example.com"
        assert descriptor.owner == "team"
        assert descriptor.repo == "repo"
        assert descriptor.ref == "main"
        assert descriptor.clone_url == "https://git.example.com/team/repo.git"

    def test_git_prefix_with_url(self):
        """Should parse git:https://... keeping the original string."""
        descriptor = parse_source("git:https://example.com/team/repo.git#v2")

        assert descriptor.clone_url == "https://example.com/team/repo.git"
        assert descriptor.ref == "v2"
        assert descriptor.raw_source == "git:https://example.com/team/repo.git#v2"

    def test_ssh_url(self):
        """Should parse git@host:owner/repo.git#ref."""
        descriptor = parse_source("git@github.com:acme/rules.git#v1")

        assert descriptor.use_ssh is True
        assert descriptor.host == "github.com"
        assert descriptor.repo == "rules"
        assert descriptor.ref == "v1"
        assert descriptor.clone_url == "git@github.com:acme/rules.git"

    def test_ssh_url_without_suffix(self):
        """Should append .git to SSH clone URLs."""
        descriptor = parse_source("git@github.com:acme/rules")

        assert descriptor.clone_url == "git@github.com:acme/rules.git"

    def test_https_git_url(self):
        """Should treat https URLs containing .git as git sources."""
        descriptor = parse_source("https://github.com/acme/rules.git#v3")

        assert descriptor.provider is Provider.GIT
        assert descriptor.owner == "acme"
        assert descriptor.repo == "rules"
        assert descriptor.ref == "v3"


class TestUrlSources:
    """Test HTTP(S) content sources."""

    def test_url_prefix(self):
        """Should parse url:https://... as a URL source."""
        descriptor = parse_source("url:https://example.com/rules/style.md")

        assert descriptor.provider is Provider.URL
        assert descriptor.url == "https://example.com/rules/style.md"
        assert descriptor.host == "example.com"
        assert descriptor.clone_url == ""

    def test_bare_https(self):
        """Should parse bare https URLs without .git as URL sources."""
        descriptor = parse_source("https://example.com/ai-rules/")

        assert descriptor.provider is Provider.URL

    def test_url_prefix_rejects_other_schemes(self):
        """Should reject url: targets that are not HTTP(S)."""
        assert parse_source("url:ftp://example.com/rules") is None


class TestMalformed:
    """Test malformed specifiers."""

    @pytest.mark.parametrize(
        "source",
        [
            "",
            "github:acme",
            "git:example.com/team",
            "git@github.com",
            "ftp://example.com/rules",
            "rules",
        ],
    )
    def test_returns_none(self, source):
        """Should return None instead of raising."""
        assert parse_source(source) is None


class TestPredicates:
    """Test source predicates."""

    SOURCES = [
        "github:acme/rules",
        "git@github.com:acme/rules.git",
        "https://github.com/acme/rules.git",
        "url:https://example.com/rules.md",
        "https://example.com/rules/",
        "./local",
        "/abs/path",
        "",
    ]

    def test_git_and_url_are_exclusive(self):
        """No source should be claimed by both loaders."""
        for source in self.SOURCES:
            assert not (is_git_source(source) and is_url_source(source)), source

    def test_git_source(self):
        """Should recognize git sources."""
        assert is_git_source("github:acme/rules")
        assert is_git_source("https://github.com/acme/rules.git")
        assert not is_git_source("https://example.com/rules/")

    def test_url_source(self):
        """Should recognize URL sources."""
        assert is_url_source("url:https://example.com/rules.md")
        assert not is_url_source("github:acme/rules")

    def test_local_source(self):
        """Should recognize filesystem paths."""
        assert is_local_source("./plugins/mine")
        assert is_local_source("../shared")
        assert is_local_source("/opt/plugins")
        assert not is_local_source("github:acme/rules")


class TestGetLoader:
    """Test loader selection."""

    def test_git_source(self):
        """Should pick the git loader for repository sources."""
        assert isinstance(get_loader("github:acme/rules"), GitLoader)
        assert isinstance(get_loader("https://github.com/acme/rules.git"), GitLoader)

    def test_url_source_shares_cache(self):
        """Should hand the shared cache to URL loaders."""
        url_cache = UrlCache()

        first = get_loader("url:https://example.com/rules.md", url_cache)
        second = get_loader("https://example.com/rules/", url_cache)

        assert isinstance(first, UrlLoader)
        assert first.cache is url_cache
        assert second.cache is url_cache

    def test_local_source(self):
        """Should fall back to the local loader for paths."""
        assert isinstance(get_loader("./plugins/mine"), LocalLoader)

    def test_unsupported_source(self):
        """Should reject sources no loader handles."""
        with pytest.raises(InvalidSourceError, match="Unsupported source"):
            get_loader("ftp://example.com/rules")
