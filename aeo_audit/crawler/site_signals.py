"""Site-level AI visibility signals: robots.txt rules for AI crawlers and llms.txt."""

import re
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx

from aeo_audit.config.settings import Settings, settings as default_settings
from aeo_audit.utils.logging import get_logger
from aeo_audit.utils.retry import retry_network_operation

logger = get_logger(__name__)

# User agents of crawlers that feed answer engines and LLM training sets
AI_USER_AGENTS = (
    "GPTBot",
    "ChatGPT-User",
    "OAI-SearchBot",
    "ClaudeBot",
    "Claude-Web",
    "anthropic-ai",
    "PerplexityBot",
    "Google-Extended",
    "CCBot",
    "Bytespider",
)

LLMS_TXT_URL_RE = re.compile(r"https?://[^\s)>\]]+")
LLMS_TXT_PATH_RE = re.compile(r"\]\((/[^)\s]*)\)")


class RobotsTxtParser:
    """Parser for robots.txt files."""

    def __init__(self, content: str, base_url: str) -> None:
        """Initialize parser with robots.txt content."""
        self.content = content
        self.base_url = base_url
        self.user_agents: dict[str, dict] = {}
        self.default_rules: dict = {}
        self._parse()

    def _parse(self) -> None:
        """Parse robots.txt content; consecutive User-agent lines share a group."""
        current_uas: list[str] = []
        group_has_rules = False

        for line in self.content.splitlines():
            line = line.split("#", 1)[0].strip()
            if not line or ":" not in line:
                continue

            key, value = line.split(":", 1)
            key = key.strip().lower()
            value = value.strip()

            if key == "user-agent":
                if group_has_rules:
                    current_uas = []
                    group_has_rules = False
                current_uas.append(value)
                self.user_agents.setdefault(
                    value,
                    {"disallowed": [], "allowed": [], "crawl-delay": None},
                )
            elif key in ("disallow", "allow", "crawl-delay") and current_uas:
                group_has_rules = True
                for ua in current_uas:
                    rules = self.user_agents[ua]
                    if key == "disallow" and value:
                        rules["disallowed"].append(value)
                    elif key == "allow" and value:
                        rules["allowed"].append(value)
                    elif key == "crawl-delay":
                        try:
                            rules["crawl-delay"] = int(float(value))
                        except ValueError:
                            pass

        if "*" in self.user_agents:
            self.default_rules = self.user_agents["*"]

    def _rules_for(self, user_agent: str) -> dict:
        for ua, rules in self.user_agents.items():
            if ua.lower() == user_agent.lower():
                return rules
        return self.default_rules

    def is_allowed(self, url: str, user_agent: str = "*") -> bool:
        """Check if URL is allowed for user agent; the longest matching rule wins."""
        rules = self._rules_for(user_agent)
        if not rules:
            return True

        path = urlparse(url).path or "/"
        best_disallow = max(
            (len(p) for p in rules.get("disallowed", []) if self._path_matches(path, p)),
            default=-1,
        )
        if best_disallow < 0:
            return True
        best_allow = max(
            (len(p) for p in rules.get("allowed", []) if self._path_matches(path, p)),
            default=-1,
        )
        return best_allow >= best_disallow

    def _path_matches(self, path: str, pattern: str) -> bool:
        """Check if path matches a robots.txt pattern (* wildcard, $ anchor)."""
        anchored = pattern.endswith("$")
        if anchored:
            pattern = pattern[:-1]
        regex = ".*".join(re.escape(part) for part in pattern.split("*"))
        if anchored:
            regex += "$"
        return bool(re.match(regex, path))

    def get_crawl_delay(self, user_agent: str = "*") -> Optional[int]:
        """Get crawl delay for user agent."""
        rules = self._rules_for(user_agent)
        return rules.get("crawl-delay") if rules else None

    def blocked_ai_agents(self) -> list[str]:
        """List the AI crawlers that may not fetch the site root."""
        root = urljoin(self.base_url, "/")
        return [ua for ua in AI_USER_AGENTS if not self.is_allowed(root, ua)]


@dataclass(frozen=True)
class SiteSignals:
    """
    Best-effort site-level signals shared by every page of a job.

    crawl_delay is the robots.txt Crawl-delay for the wildcard group, if any.
    """

    robots_txt_found: bool = False
    blocked_ai_agents: tuple = ()
    llms_txt_found: bool = False
    llms_txt_urls: frozenset = field(default_factory=frozenset)
    crawl_delay: Optional[int] = None

    @property
    def blocks_ai(self) -> bool:
        return bool(self.blocked_ai_agents)

    def references(self, url: str) -> bool:
        """True if llms.txt lists the page by absolute URL or root-relative path."""
        if not self.llms_txt_found:
            return False
        parsed = urlparse(url)
        path = parsed.path.rstrip("/") or "/"
        candidates = {url.rstrip("/"), path}
        return any(c in self.llms_txt_urls for c in candidates)

    def to_dict(self) -> dict:
        return {
            "robots_txt_found": self.robots_txt_found,
            "blocked_ai_agents": list(self.blocked_ai_agents),
            "blocks_ai": self.blocks_ai,
            "llms_txt_found": self.llms_txt_found,
            "llms_txt_url_count": len(self.llms_txt_urls),
            "crawl_delay": self.crawl_delay,
        }


def parse_llms_txt(content: str, base_url: str) -> frozenset:
    """
    Collect the page references listed in an llms.txt file.

    Args:
        content: llms.txt body (markdown)
        base_url: Site base URL, used to index absolute URLs by path too

    Returns:
        Set of absolute URLs and root-relative paths, without trailing slashes
    """
    host = urlparse(base_url).netloc
    refs: set[str] = set()
    for match in LLMS_TXT_URL_RE.findall(content):
        url = match.rstrip(".,;").rstrip("/")
        refs.add(url)
        parsed = urlparse(url)
        if parsed.netloc == host:
            refs.add(parsed.path.rstrip("/") or "/")
    for path in LLMS_TXT_PATH_RE.findall(content):
        refs.add(path.rstrip("/") or "/")
    return frozenset(refs)


class SiteSignalFetcher:
    """Fetches robots.txt and llms.txt for a site over httpx."""

    def __init__(
        self,
        config: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config or default_settings
        self._transport = transport

    @retry_network_operation(max_attempts=2)
    async def _get(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        response = await client.get(url)
        if response.status_code == 200 and response.text.strip():
            return response.text
        return None

    async def fetch_text(self, url: str) -> Optional[str]:
        """Fetch a small text resource; any failure yields None."""
        try:
            async with httpx.AsyncClient(
                timeout=self.config.site_signal_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            ) as client:
                return await self._get(client, url)
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Failed to fetch site resource", url=url, error=str(e))
            return None

    async def fetch(self, base_url: str) -> SiteSignals:
        """
        Collect site signals for a site.

        Args:
            base_url: scheme://host of the audited site

        Returns:
            SiteSignals; missing files simply report as not found
        """
        robots_content = await self.fetch_text(urljoin(base_url, "/robots.txt"))
        blocked: tuple = ()
        crawl_delay = None
        if robots_content:
            parser = RobotsTxtParser(robots_content, base_url)
            blocked = tuple(parser.blocked_ai_agents())
            crawl_delay = parser.get_crawl_delay()

        llms_content = await self.fetch_text(urljoin(base_url, "/llms.txt"))
        llms_urls = parse_llms_txt(llms_content, base_url) if llms_content else frozenset()

        signals = SiteSignals(
            robots_txt_found=robots_content is not None,
            blocked_ai_agents=blocked,
            llms_txt_found=llms_content is not None,
            llms_txt_urls=llms_urls,
            crawl_delay=crawl_delay,
        )
        logger.info(
            "Site signals collected",
            base_url=base_url,
            robots_txt_found=signals.robots_txt_found,
            blocked_ai_agents=list(blocked),
            llms_txt_found=signals.llms_txt_found,
        )
        return signals
