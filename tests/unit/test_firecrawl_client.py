"""Unit tests for the Firecrawl crawl provider client."""

import json

import httpx
import pytest

from aeo_audit.config.settings import Settings
from aeo_audit.crawler.firecrawl_client import FirecrawlProvider
from aeo_audit.crawler.provider import ProviderState
from aeo_audit.utils.exceptions import ConfigurationError, CrawlProviderError


@pytest.fixture
def config() -> Settings:
    return Settings(
        _env_file=None,
        firecrawl_api_key="fc-secret",
        firecrawl_base_url="https://firecrawl.test/",
    )


def _provider(config: Settings, handler) -> FirecrawlProvider:
    return FirecrawlProvider(config, transport=httpx.MockTransport(handler))


@pytest.mark.unit
def test_missing_api_key_raises() -> None:
    """Test that the provider refuses to start without credentials."""
    with pytest.raises(ConfigurationError):
        FirecrawlProvider(Settings(_env_file=None, firecrawl_api_key=None))


@pytest.mark.unit
@pytest.mark.asyncio
class TestFirecrawlStart:
    """Test FirecrawlProvider.start."""

    async def test_start_sends_crawl_request(self, config: Settings) -> None:
        """Test request shape and returned crawl id."""
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "id": "crawl-123"})

        provider = _provider(config, handler)
        crawl_id = await provider.start("https://example.com", max_pages=25, depth=3)
        await provider.close()

        assert crawl_id == "crawl-123"
        assert captured["method"] == "POST"
        assert captured["url"] == "https://firecrawl.test/v1/crawl"
        assert captured["auth"] == "Bearer fc-secret"
        assert captured["body"]["url"] == "https://example.com"
        assert captured["body"]["limit"] == 25
        assert captured["body"]["maxDepth"] == 3
        assert captured["body"]["scrapeOptions"]["formats"] == ["markdown", "html"]

    async def test_start_rejected_key(self, config: Settings) -> None:
        """Test that 401 surfaces as a configuration error."""
        provider = _provider(config, lambda r: httpx.Response(401, json={"error": "Unauthorized"}))
        with pytest.raises(ConfigurationError):
            await provider.start("https://example.com", max_pages=5, depth=1)

    async def test_start_server_error(self, config: Settings) -> None:
        """Test that 5xx surfaces as a provider error."""
        provider = _provider(config, lambda r: httpx.Response(500, text="internal"))
        with pytest.raises(CrawlProviderError):
            await provider.start("https://example.com", max_pages=5, depth=1)

    async def test_start_without_id(self, config: Settings) -> None:
        """Test that an unsuccessful start payload is an error."""
        provider = _provider(config, lambda r: httpx.Response(200, json={"success": False, "error": "limit reached"}))
        with pytest.raises(CrawlProviderError, match="limit reached"):
            await provider.start("https://example.com", max_pages=5, depth=1)

    async def test_non_json_body(self, config: Settings) -> None:
        """Test that non-JSON responses are provider errors."""
        provider = _provider(config, lambda r: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(CrawlProviderError):
            await provider.start("https://example.com", max_pages=5, depth=1)


@pytest.mark.unit
@pytest.mark.asyncio
class TestFirecrawlStatus:
    """Test FirecrawlProvider.status."""

    @pytest.mark.parametrize(
        "raw_state, expected",
        [
            ("scraping", ProviderState.RUNNING),
            ("completed", ProviderState.SUCCEEDED),
            ("failed", ProviderState.FAILED),
            ("cancelled", ProviderState.ABORTED),
            ("something-new", ProviderState.RUNNING),
        ],
    )
    async def test_state_mapping(self, config: Settings, raw_state: str, expected: ProviderState) -> None:
        """Test mapping of Firecrawl states."""
        provider = _provider(config, lambda r: httpx.Response(200, json={"status": raw_state}))
        status = await provider.status("crawl-1")
        assert status.state == expected

    async def test_percent_from_counts(self, config: Settings) -> None:
        """Test that progress is derived from completed/total."""
        provider = _provider(
            config,
            lambda r: httpx.Response(200, json={"status": "scraping", "completed": 3, "total": 12}),
        )
        status = await provider.status("crawl-1")
        assert status.percent == 25
        assert status.completed == 3
        assert status.total == 12

    async def test_percent_unknown_without_total(self, config: Settings) -> None:
        """Test that no total means no percentage."""
        provider = _provider(config, lambda r: httpx.Response(200, json={"status": "scraping", "total": 0}))
        status = await provider.status("crawl-1")
        assert status.percent is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestFirecrawlResults:
    """Test FirecrawlProvider.results and cancel."""

    async def test_results_follow_next_cursor(self, config: Settings) -> None:
        """Test that paginated results are concatenated."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("skip") == "2":
                return httpx.Response(200, json={"status": "completed", "data": [{"markdown": "c"}]})
            return httpx.Response(
                200,
                json={
                    "status": "completed",
                    "data": [{"markdown": "a"}, {"markdown": "b"}, "junk"],
                    "next": "https://firecrawl.test/v1/crawl/crawl-1?skip=2",
                },
            )

        provider = _provider(config, handler)
        pages = await provider.results("crawl-1")
        assert [p["markdown"] for p in pages] == ["a", "b", "c"]

    async def test_results_keep_pages_when_pagination_fails(self, config: Settings) -> None:
        """Test that a failing next page keeps what was already collected."""

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params.get("skip"):
                return httpx.Response(502, text="bad gateway")
            return httpx.Response(
                200,
                json={"data": [{"markdown": "a"}], "next": "https://firecrawl.test/v1/crawl/crawl-1?skip=1"},
            )

        provider = _provider(config, handler)
        pages = await provider.results("crawl-1")
        assert pages == [{"markdown": "a"}]

    async def test_cancel_sends_delete(self, config: Settings) -> None:
        """Test that cancel issues a DELETE for the crawl."""
        methods = []

        def handler(request: httpx.Request) -> httpx.Response:
            methods.append((request.method, request.url.path))
            return httpx.Response(200, json={"status": "cancelled"})

        provider = _provider(config, handler)
        await provider.cancel("crawl-9")
        assert methods == [("DELETE", "/v1/crawl/crawl-9")]

    async def test_cancel_failure_not_raised(self, config: Settings) -> None:
        """Test that cancel is best-effort."""
        provider = _provider(config, lambda r: httpx.Response(404, text="gone"))
        await provider.cancel("crawl-9")

    async def test_close_allows_reuse(self, config: Settings) -> None:
        """Test that the HTTP client is recreated after close."""
        provider = _provider(config, lambda r: httpx.Response(200, json={"status": "completed"}))
        await provider.status("crawl-1")
        await provider.close()
        status = await provider.status("crawl-1")
        assert status.state == ProviderState.SUCCEEDED
        await provider.close()


@pytest.mark.unit
class TestProviderState:
    """Test ProviderState classification."""

    @pytest.mark.parametrize(
        "state, terminal, degraded",
        [
            (ProviderState.RUNNING, False, False),
            (ProviderState.SUCCEEDED, True, False),
            (ProviderState.FAILED, True, True),
            (ProviderState.TIMEOUT, True, True),
            (ProviderState.ABORTED, True, True),
        ],
    )
    def test_terminal_and_degraded(self, state: ProviderState, terminal: bool, degraded: bool) -> None:
        """Test which states end a crawl and which end it without success."""
        assert state.is_terminal is terminal
        assert state.is_degraded is degraded
