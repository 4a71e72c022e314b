"""Unit tests for robots.txt / llms.txt site signals."""

import httpx
import pytest
from tenacity import wait_none

from aeo_audit.config.settings import Settings
from aeo_audit.crawler.site_signals import RobotsTxtParser, SiteSignalFetcher, SiteSignals, parse_llms_txt


@pytest.mark.unit
class TestRobotsTxtParser:
    """Test RobotsTxtParser class."""

    def test_parse_simple_robots_txt(self) -> None:
        """Test parsing simple robots.txt."""
        content = """
User-agent: *
Disallow: /admin/
Disallow: /private/
Allow: /public/
Crawl-delay: 2
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert "*" in parser.user_agents
        assert "/admin/" in parser.user_agents["*"]["disallowed"]
        assert "/private/" in parser.user_agents["*"]["disallowed"]
        assert "/public/" in parser.user_agents["*"]["allowed"]
        assert parser.user_agents["*"]["crawl-delay"] == 2

    def test_grouped_user_agents_share_rules(self) -> None:
        """Test that consecutive User-agent lines form one group."""
        content = """
User-agent: GPTBot
User-agent: CCBot
Disallow: /

User-agent: *
Allow: /
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert parser.user_agents["GPTBot"]["disallowed"] == ["/"]
        assert parser.user_agents["CCBot"]["disallowed"] == ["/"]
        assert parser.user_agents["*"]["disallowed"] == []

    def test_is_allowed_longest_match_wins(self) -> None:
        """Test is_allowed with overlapping allow and disallow rules."""
        content = """
User-agent: *
Disallow: /admin/
Allow: /admin/public/
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert parser.is_allowed("https://example.com/home") is True
        assert parser.is_allowed("https://example.com/admin/") is False
        assert parser.is_allowed("https://example.com/admin/public/") is True

    def test_is_allowed_wildcard_patterns(self) -> None:
        """Test is_allowed with wildcard patterns."""
        content = """
User-agent: *
Disallow: /private/*
Allow: /private/public/
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert parser.is_allowed("https://example.com/private/secret") is False
        assert parser.is_allowed("https://example.com/private/public/") is True

    def test_path_matches_end_anchor(self) -> None:
        """Test path matching with $ end anchor."""
        parser = RobotsTxtParser("User-agent: *\nDisallow: /admin$\n", "https://example.com")
        assert parser.is_allowed("https://example.com/admin") is False
        assert parser.is_allowed("https://example.com/admin/users") is True

    def test_get_crawl_delay(self) -> None:
        """Test get_crawl_delay with a fallback to *."""
        content = """
User-agent: *
Crawl-delay: 5

User-agent: Googlebot
Crawl-delay: 1.5
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert parser.get_crawl_delay() == 5
        assert parser.get_crawl_delay("Googlebot") == 1
        assert parser.get_crawl_delay("UnknownBot") == 5

    def test_parse_empty_robots_txt(self) -> None:
        """Test parsing empty robots.txt."""
        parser = RobotsTxtParser("", "https://example.com")
        assert parser.user_agents == {}
        assert parser.is_allowed("https://example.com/any/path") is True
        assert parser.blocked_ai_agents() == []

    def test_parse_comments(self) -> None:
        """Test parsing robots.txt with comments."""
        content = """
# This is a comment
User-agent: *   # everyone
Disallow: /admin/
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert "/admin/" in parser.user_agents["*"]["disallowed"]

    def test_blocked_ai_agents_specific(self) -> None:
        """Test detection of AI crawlers blocked by name."""
        content = """
User-agent: GPTBot
Disallow: /

User-agent: ClaudeBot
Disallow: /private/
"""
        parser = RobotsTxtParser(content, "https://example.com")
        assert parser.blocked_ai_agents() == ["GPTBot"]

    def test_blocked_ai_agents_wildcard(self) -> None:
        """Test that a site-wide disallow blocks every AI crawler without its own group."""
        content = """
User-agent: *
Disallow: /

User-agent: PerplexityBot
Allow: /
"""
        blocked = RobotsTxtParser(content, "https://example.com").blocked_ai_agents()
        assert "GPTBot" in blocked
        assert "PerplexityBot" not in blocked


@pytest.mark.unit
class TestLlmsTxt:
    """Test llms.txt parsing and page references."""

    def test_parse_llms_txt(self) -> None:
        """Test collecting absolute and relative references."""
        content = """# Example
> Guides for answer engines

- [AEO basics](https://example.com/guides/aeo-basics/): intro
- [Pricing](/pricing)
- [Partner](https://partner.org/page)
"""
        refs = parse_llms_txt(content, "https://example.com")
        assert "https://example.com/guides/aeo-basics" in refs
        assert "/guides/aeo-basics" in refs
        assert "/pricing" in refs
        assert "https://partner.org/page" in refs
        assert "/page" not in refs

    def test_references(self) -> None:
        """Test SiteSignals.references by URL and by path."""
        signals = SiteSignals(
            llms_txt_found=True,
            llms_txt_urls=frozenset({"https://example.com/guides/aeo-basics", "/guides/aeo-basics", "/pricing"}),
        )
        assert signals.references("https://example.com/guides/aeo-basics/") is True
        assert signals.references("https://example.com/pricing") is True
        assert signals.references("https://example.com/other") is False

    def test_references_without_llms_txt(self) -> None:
        """Test that nothing is referenced when there is no llms.txt."""
        assert SiteSignals().references("https://example.com/") is False

    def test_to_dict(self) -> None:
        """Test the persisted summary of site signals."""
        signals = SiteSignals(robots_txt_found=True, blocked_ai_agents=("GPTBot",), llms_txt_found=False)
        assert signals.to_dict() == {
            "robots_txt_found": True,
            "blocked_ai_agents": ["GPTBot"],
            "blocks_ai": True,
            "llms_txt_found": False,
            "llms_txt_url_count": 0,
            "crawl_delay": None,
        }


@pytest.mark.unit
@pytest.mark.asyncio
class TestSiteSignalFetcher:
    """Test SiteSignalFetcher over a mocked transport."""

    @pytest.fixture
    def config(self) -> Settings:
        return Settings(_env_file=None, user_agent="TestBot/1.0")

    async def test_fetch_both_files(self, config: Settings) -> None:
        """Test fetching robots.txt and llms.txt."""
        seen_agents = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_agents.append(request.headers["User-Agent"])
            if request.url.path == "/robots.txt":
                return httpx.Response(200, text="User-agent: GPTBot\nDisallow: /\n\nUser-agent: *\nCrawl-delay: 10\n")
            if request.url.path == "/llms.txt":
                return httpx.Response(200, text="- [Home](https://example.com/)\n")
            return httpx.Response(404)

        fetcher = SiteSignalFetcher(config, transport=httpx.MockTransport(handler))
        signals = await fetcher.fetch("https://example.com")

        assert signals.robots_txt_found is True
        assert signals.blocked_ai_agents == ("GPTBot",)
        assert signals.crawl_delay == 10
        assert signals.llms_txt_found is True
        assert signals.references("https://example.com/") is True
        assert seen_agents == ["TestBot/1.0", "TestBot/1.0"]

    async def test_fetch_missing_files(self, config: Settings) -> None:
        """Test that missing files report as not found."""
        fetcher = SiteSignalFetcher(config, transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        signals = await fetcher.fetch("https://example.com")
        assert signals == SiteSignals()

    async def test_fetch_network_error(self, config: Settings, mocker) -> None:
        """Test that network failures yield None rather than raising."""
        mocker.patch("aeo_audit.utils.retry.wait_exponential", return_value=wait_none())

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection failed", request=request)

        fetcher = SiteSignalFetcher(config, transport=httpx.MockTransport(handler))
        assert await fetcher.fetch_text("https://example.com/robots.txt") is None
