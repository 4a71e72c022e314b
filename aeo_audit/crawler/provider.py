"""Crawl provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ProviderState(str, Enum):
    """States a crawl provider may report for a job."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self != ProviderState.RUNNING

    @property
    def is_degraded(self) -> bool:
        """Terminal without success; partial results are still worth fetching."""
        return self in (ProviderState.FAILED, ProviderState.TIMEOUT, ProviderState.ABORTED)


@dataclass(frozen=True)
class ProviderStatus:
    """Status snapshot of a provider crawl job."""

    state: ProviderState
    percent: Optional[int] = None
    completed: int = 0
    total: int = 0


class CrawlProvider(ABC):
    """External service that harvests pages for an audit."""

    @abstractmethod
    async def start(self, url: str, max_pages: int, depth: int, follow_links: bool = True) -> str:
        """Start a crawl and return the provider's job id."""

    @abstractmethod
    async def status(self, provider_job_id: str) -> ProviderStatus:
        """Return the current state of a crawl."""

    @abstractmethod
    async def results(self, provider_job_id: str) -> list[dict]:
        """Return the raw page payloads harvested so far."""

    async def cancel(self, provider_job_id: str) -> None:
        """Ask the provider to stop a crawl; providers without cancellation ignore it."""
        return None

    async def close(self) -> None:
        """Release network resources."""
        return None
