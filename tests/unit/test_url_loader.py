"""
Tests for the URL loader.

HTTP is served by ``httpx.MockTransport``; no network access happens.
"""

import json
import os
import time

import httpx
import pytest

from aitoolsync.loaders.url import (
    UrlCache,
    UrlLoader,
    UrlLoaderOptions,
    cache_file_path,
    detect_content_type,
    is_single_file,
    is_valid_url,
)
from aitoolsync.parsers import ContentType


def serve(routes: dict[str, str | httpx.Response], calls: list[str] | None = None):
    """Build a transport answering from ``routes``; anything else is 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        answer = routes.get(url)
        if answer is None:
            return httpx.Response(404)
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, text=answer)

    return httpx.MockTransport(handler)


class TestHelpers:
    """Test URL helpers."""

    def test_is_valid_url(self):
        """Should accept http(s) URLs with or without the url: prefix."""
        assert is_valid_url("url:https://example.com/rules/")
        assert is_valid_url("http://example.com/a.md")
        assert not is_valid_url("url:ftp://example.com/a.md")
        assert not is_valid_url("url:not a url")

    def test_is_single_file(self):
        """Should recognize file suffixes."""
        assert is_single_file("https://example.com/rules/a.md")
        assert is_single_file("https://example.com/hooks/a.yaml")
        assert not is_single_file("https://example.com/rules/")

    def test_detect_content_type(self):
        """Should guess the type from the path, defaulting to rules."""
        assert detect_content_type("https://x.io/personas/a.md") is ContentType.PERSONA
        assert detect_content_type("https://x.io/agents/a.md") is ContentType.PERSONA
        assert detect_content_type("https://x.io/commands/a.md") is ContentType.COMMAND
        assert detect_content_type("https://x.io/hooks/a.md") is ContentType.HOOK
        assert detect_content_type("https://x.io/misc/a.md") is ContentType.RULE

    def test_can_load(self):
        """Should accept url: and plain HTTP sources that are not git."""
        loader = UrlLoader()

        assert loader.can_load("url:https://example.com/rules/")
        assert loader.can_load("https://example.com/rules/a.md")
        assert not loader.can_load("https://github.com/a/b.git")


class TestSingleFile:
    """Test loading single files."""

    @pytest.mark.asyncio
    async def test_single_persona(self):
        """Should fetch and parse one file with its detected type."""
        transport = serve({"https://example.com/personas/reviewer.md": "Review code."})

        result = await UrlLoader(transport=transport).load(
            "url:https://example.com/personas/reviewer.md"
        )

        assert result.ok
        assert [p.name for p in result.personas] == ["reviewer"]
        assert result.personas[0].content == "Review code."

    @pytest.mark.asyncio
    async def test_http_error(self):
        """Should report non-success responses."""
        transport = serve({"https://example.com/rules/a.md": httpx.Response(500)})

        result = await UrlLoader(transport=transport).load("https://example.com/rules/a.md")

        assert result.is_empty
        assert result.errors[0].message == "HTTP 500: Internal Server Error"

    @pytest.mark.asyncio
    async def test_missing_file_is_an_error(self):
        """Should report a 404 for a requested file."""
        result = await UrlLoader(transport=serve({})).load("https://example.com/rules/a.md")

        assert result.errors[0].message == "HTTP 404: Not Found"

    @pytest.mark.asyncio
    async def test_timeout(self):
        """Should report request timeouts."""

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = await UrlLoader(transport=httpx.MockTransport(handler)).load(
            "https://example.com/rules/a.md", UrlLoaderOptions(timeout=5)
        )

        assert result.errors[0].message == "Request timeout after 5s"

    @pytest.mark.asyncio
    async def test_network_error(self):
        """Should report connection failures."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        result = await UrlLoader(transport=httpx.MockTransport(handler)).load(
            "https://example.com/rules/a.md"
        )

        assert result.errors[0].message.startswith("Network error:")

    @pytest.mark.asyncio
    async def test_invalid_url(self):
        """Should reject malformed URLs without fetching."""
        result = await UrlLoader(transport=serve({})).load("url:example.com")

        assert result.errors[0].message == "Invalid URL format"


class TestDirectory:
    """Test directory endpoints."""

    @pytest.mark.asyncio
    async def test_top_level_index(self):
        """Should load every file listed in index.json."""
        base = "https://example.com/ai/"
        transport = serve(
            {
                base + "index.json": json.dumps(
                    {"rules": ["style.md", "testing.md"], "commands": ["deploy.md"]}
                ),
                base + "rules/style.md": "Be concise.",
                base + "rules/testing.md": "---\nname: tests\n---\nWrite tests.",
                base + "commands/deploy.md": "Deploy it.",
            }
        )

        result = await UrlLoader(transport=transport).load("url:" + base)

        assert result.ok
        assert [r.name for r in result.rules] == ["style", "tests"]
        assert [c.name for c in result.commands] == ["deploy"]

    @pytest.mark.asyncio
    async def test_per_type_indexes(self):
        """Should fall back to per-directory indexes, including agents/."""
        base = "https://example.com/ai"
        transport = serve(
            {
                base + "/rules/index.json": json.dumps(["a.md"]),
                base + "/rules/a.md": "Rule A.",
                base + "/agents/index.json": json.dumps(["helper.md"]),
                base + "/agents/helper.md": "Help out.",
            }
        )

        result = await UrlLoader(transport=transport).load(base)

        assert result.ok
        assert [r.name for r in result.rules] == ["a"]
        assert [p.name for p in result.personas] == ["helper"]

    @pytest.mark.asyncio
    async def test_personas_directory_wins(self):
        """Should not probe agents/ when personas/ answered."""
        base = "https://example.com/ai/"
        calls: list[str] = []
        transport = serve(
            {
                base + "personas/index.json": json.dumps(["p.md"]),
                base + "personas/p.md": "Persona.",
            },
            calls,
        )

        result = await UrlLoader(transport=transport).load(base)

        assert [p.name for p in result.personas] == ["p"]
        assert base + "agents/index.json" not in calls

    @pytest.mark.asyncio
    async def test_empty_directory(self):
        """Should report an endpoint that exposes nothing."""
        result = await UrlLoader(transport=serve({})).load("https://example.com/ai/")

        assert len(result.errors) == 1
        assert result.errors[0].message.startswith("No content found at URL")

    @pytest.mark.asyncio
    async def test_listed_file_failure_keeps_others(self):
        """Should keep loading when one listed file fails."""
        base = "https://example.com/ai/"
        transport = serve(
            {
                base + "index.json": json.dumps({"rules": ["ok.md", "gone.md"]}),
                base + "rules/ok.md": "Fine.",
            }
        )

        result = await UrlLoader(transport=transport).load(base)

        assert [r.name for r in result.rules] == ["ok"]
        assert len(result.errors) == 1
        assert result.errors[0].path == base + "rules/gone.md"


class TestCaching:
    """Test the body cache."""

    @pytest.mark.asyncio
    async def test_cache_hit_skips_network(self):
        """Should serve a fresh body from memory."""
        calls: list[str] = []
        url = "https://example.com/rules/a.md"
        loader = UrlLoader(transport=serve({url: "Rule."}, calls))

        await loader.load(url)
        result = await loader.load(url)

        assert [r.content for r in result.rules] == ["Rule."]
        assert calls == [url]
        assert len(loader.cache) == 1

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_cache(self):
        """Should fetch every time and store nothing with TTL 0."""
        calls: list[str] = []
        url = "https://example.com/rules/a.md"
        loader = UrlLoader(transport=serve({url: "Rule."}, calls))
        options = UrlLoaderOptions(cache_ttl=0)

        await loader.load(url, options)
        await loader.load(url, options)

        assert len(calls) == 2
        assert len(loader.cache) == 0

    @pytest.mark.asyncio
    async def test_not_modified_returns_stored_body(self):
        """Should revalidate with the ETag and reuse the stored body on 304."""
        url = "https://example.com/rules/a.md"
        sent: list[str | None] = []

        def handler(request):
            sent.append(request.headers.get("If-None-Match"))
            if request.headers.get("If-None-Match") == '"v1"':
                return httpx.Response(304)
            return httpx.Response(200, text="Stored rule.", headers={"ETag": '"v1"'})

        cache = UrlCache()
        loader = UrlLoader(cache=cache, transport=httpx.MockTransport(handler))
        first = await loader.load(url)
        cache.lookup(url).fetched_at -= 7200
        second = await loader.load(url)

        assert sent == [None, '"v1"']
        assert [r.content for r in second.rules] == [r.content for r in first.rules]
        assert second.rules[0].content == "Stored rule."
        assert time.time() - cache.lookup(url).fetched_at < 60

    @pytest.mark.asyncio
    async def test_disk_tier(self, tmp_path):
        """Should mirror bodies to disk and serve them to a fresh loader."""
        url = "https://example.com/rules/a.md"
        options = UrlLoaderOptions(cache_dir=tmp_path)

        await UrlLoader(transport=serve({url: "Rule."})).load(url, options)

        path = cache_file_path(url, tmp_path)
        assert path.name.startswith("example.com_")
        assert path.read_text() == "Rule."

        def handler(request):
            raise AssertionError("network used")

        result = await UrlLoader(transport=httpx.MockTransport(handler)).load(url, options)
        assert result.rules[0].content == "Rule."

    def test_expired_disk_file(self, tmp_path):
        """Should ignore disk files older than the TTL."""
        url = "https://example.com/rules/a.md"
        UrlCache().set(url, "Rule.", cache_dir=tmp_path)
        path = cache_file_path(url, tmp_path)
        old = time.time() - 100
        os.utime(path, (old, old))

        assert UrlCache().get(url, ttl=50, cache_dir=tmp_path) is None
        assert UrlCache().get(url, ttl=500, cache_dir=tmp_path) == "Rule."

    def test_clear_and_entries(self):
        """Should expose a snapshot and clear memory."""
        cache = UrlCache()
        cache.set("https://a.io/x.md", "x")

        snapshot = cache.entries()
        cache.clear()

        assert list(snapshot) == ["https://a.io/x.md"]
        assert len(cache) == 0
        assert cache.get("https://a.io/x.md", ttl=60) is None
