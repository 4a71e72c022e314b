"""Firecrawl v1 REST client implementing the crawl provider interface."""

from typing import Any, Optional

import httpx

from aeo_audit.config.settings import Settings, settings as default_settings
from aeo_audit.crawler.provider import CrawlProvider, ProviderState, ProviderStatus
from aeo_audit.utils.exceptions import ConfigurationError, CrawlProviderError
from aeo_audit.utils.logging import get_logger
from aeo_audit.utils.retry import retry_network_operation

logger = get_logger(__name__)

# Firecrawl job states mapped onto provider states
FIRECRAWL_STATES = {
    "scraping": ProviderState.RUNNING,
    "active": ProviderState.RUNNING,
    "waiting": ProviderState.RUNNING,
    "paused": ProviderState.RUNNING,
    "completed": ProviderState.SUCCEEDED,
    "failed": ProviderState.FAILED,
    "cancelled": ProviderState.ABORTED,
    "timeout": ProviderState.TIMEOUT,
}

MAX_RESULT_PAGES = 50


class FirecrawlProvider(CrawlProvider):
    """Crawl provider backed by the hosted Firecrawl API."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Settings with the Firecrawl key and base URL
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ConfigurationError: If the API key is missing
        """
        self.config = config or default_settings
        self.config.require_crawl_provider()
        self.base_url = self.config.firecrawl_base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Return the HTTP client, creating it if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.firecrawl_timeout_seconds,
                headers={
                    "Authorization": f"Bearer {self.config.firecrawl_api_key}",
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @retry_network_operation()
    async def _request(self, method: str, path: str, **kwargs: Any) -> dict:
        """Send a request and decode the JSON body, mapping HTTP failures to CrawlProviderError."""
        response = await self._get_client().request(method, path, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in (401, 403):
                raise ConfigurationError(f"Firecrawl rejected the API key ({e.response.status_code})") from e
            raise CrawlProviderError(
                f"Firecrawl {method} {path} failed: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        try:
            payload = response.json()
        except ValueError as e:
            raise CrawlProviderError(f"Firecrawl returned a non-JSON body for {path}") from e
        if not isinstance(payload, dict):
            raise CrawlProviderError(f"Unexpected Firecrawl payload for {path}")
        return payload

    async def start(self, url: str, max_pages: int, depth: int, follow_links: bool = True) -> str:
        body = {
            "url": url,
            "limit": max_pages,
            "maxDepth": depth,
            "allowBackwardLinks": follow_links,
            "ignoreSitemap": not follow_links,
            "scrapeOptions": {"formats": ["markdown", "html"]},
        }
        try:
            payload = await self._request("POST", "/v1/crawl", json=body)
        except httpx.TransportError as e:
            raise CrawlProviderError(f"Firecrawl unreachable: {e}") from e

        crawl_id = payload.get("id")
        if not payload.get("success", True) or not crawl_id:
            raise CrawlProviderError(f"Firecrawl did not start the crawl: {payload.get('error', payload)}")
        logger.info("Firecrawl crawl started", url=url, provider_job_id=crawl_id, limit=max_pages)
        return str(crawl_id)

    async def _status_payload(self, provider_job_id: str) -> dict:
        try:
            return await self._request("GET", f"/v1/crawl/{provider_job_id}")
        except httpx.TransportError as e:
            raise CrawlProviderError(f"Firecrawl unreachable: {e}") from e

    async def status(self, provider_job_id: str) -> ProviderStatus:
        payload = await self._status_payload(provider_job_id)
        raw_state = str(payload.get("status", "")).lower()
        state = FIRECRAWL_STATES.get(raw_state, ProviderState.RUNNING)
        completed = int(payload.get("completed") or 0)
        total = int(payload.get("total") or 0)
        percent = round(completed / total * 100) if total > 0 else None
        logger.debug(
            "Firecrawl status",
            provider_job_id=provider_job_id,
            raw_state=raw_state,
            state=state.value,
            completed=completed,
            total=total,
        )
        return ProviderStatus(state=state, percent=percent, completed=completed, total=total)

    async def results(self, provider_job_id: str) -> list[dict]:
        """Collect every page of a crawl, following the `next` cursor."""
        payload = await self._status_payload(provider_job_id)
        pages: list[dict] = [p for p in payload.get("data") or [] if isinstance(p, dict)]

        next_url = payload.get("next")
        followed = 0
        while next_url and followed < MAX_RESULT_PAGES:
            followed += 1
            try:
                payload = await self._request("GET", next_url)
            except (CrawlProviderError, httpx.TransportError) as e:
                # Keep what was already collected
                logger.warning("Stopped following Firecrawl pagination", provider_job_id=provider_job_id, error=str(e))
                break
            pages.extend(p for p in payload.get("data") or [] if isinstance(p, dict))
            next_url = payload.get("next")

        logger.info("Firecrawl results fetched", provider_job_id=provider_job_id, pages=len(pages))
        return pages

    async def cancel(self, provider_job_id: str) -> None:
        try:
            await self._request("DELETE", f"/v1/crawl/{provider_job_id}")
            logger.info("Firecrawl crawl cancelled", provider_job_id=provider_job_id)
        except (CrawlProviderError, httpx.TransportError) as e:
            logger.warning("Failed to cancel Firecrawl crawl", provider_job_id=provider_job_id, error=str(e))
