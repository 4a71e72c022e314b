"""Shared fixtures: SQLite-backed store, fake crawl provider and sample pages."""

from typing import Optional

import httpx
import pytest

from aeo_audit.analysis.diagnostics import DiagnosticAnnotator
from aeo_audit.config.settings import Settings
from aeo_audit.crawler.provider import CrawlProvider, ProviderState, ProviderStatus
from aeo_audit.crawler.site_signals import SiteSignalFetcher
from aeo_audit.database.db_session import create_engine_for_url, create_session_factory, init_models
from aeo_audit.database.result_store import ResultStore
from aeo_audit.services.audit_orchestrator import AuditOrchestrator


class FakeCrawlProvider(CrawlProvider):
    """In-memory crawl provider with scripted states and failure switches."""

    def __init__(
        self,
        pages: Optional[list] = None,
        states: Optional[list] = None,
        start_error: Optional[Exception] = None,
        status_error: Optional[Exception] = None,
        results_error: Optional[Exception] = None,
    ) -> None:
        self.pages = pages if pages is not None else []
        self.states = list(states or [ProviderStatus(state=ProviderState.SUCCEEDED, percent=100)])
        self.start_error = start_error
        self.status_error = status_error
        self.results_error = results_error
        self.start_calls: list = []
        self.status_calls = 0
        self.results_calls = 0
        self.cancelled: list = []
        self.closed = False

    async def start(self, url: str, max_pages: int, depth: int, follow_links: bool = True) -> str:
        self.start_calls.append({"url": url, "max_pages": max_pages, "depth": depth, "follow_links": follow_links})
        if self.start_error is not None:
            raise self.start_error
        return f"crawl-{len(self.start_calls)}"

    async def status(self, provider_job_id: str) -> ProviderStatus:
        self.status_calls += 1
        if self.status_error is not None:
            raise self.status_error
        if len(self.states) > 1:
            return self.states.pop(0)
        return self.states[0]

    async def results(self, provider_job_id: str) -> list[dict]:
        self.results_calls += 1
        if self.results_error is not None:
            raise self.results_error
        return list(self.pages)

    async def cancel(self, provider_job_id: str) -> None:
        self.cancelled.append(provider_job_id)

    async def close(self) -> None:
        self.closed = True


SCENARIO_A_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>How to Optimize Content for AI Answer Engines</title>
<meta name="description" content="Learn how to make your pages easy for AI answer engines to read, trust and cite, with clear structure, schema markup and short answers.">
<meta name="author" content="Jane Doe">
<link rel="canonical" href="https://example.com/guides/aeo-basics">
<link rel="alternate" hreflang="en" href="https://example.com/guides/aeo-basics">
<link rel="icon" href="/favicon.ico">
<meta property="og:title" content="How to Optimize Content for AI Answer Engines">
<meta property="og:description" content="A plain guide to pages that answer engines can read and cite.">
<meta property="og:image" content="https://example.com/img/aeo-basics.png">
<meta name="twitter:card" content="summary_large_image">
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "Organization", "name": "Example Guides", "url": "https://example.com"},
  {"@type": "BreadcrumbList", "itemListElement": [
    {"@type": "ListItem", "position": 1, "name": "Guides", "item": "https://example.com/guides"},
    {"@type": "ListItem", "position": 2, "name": "AEO basics", "item": "https://example.com/guides/aeo-basics"}
  ]},
  {"@type": "Article", "headline": "How to Optimize Content for AI Answer Engines",
   "author": {"@type": "Person", "name": "Jane Doe"},
   "datePublished": "2024-04-02", "dateModified": "2024-05-01"},
  {"@type": "FAQPage", "mainEntity": [
    {"@type": "Question", "name": "What is answer engine optimization?",
     "acceptedAnswer": {"@type": "Answer", "text": "Shaping a page so a bot can quote it."}}
  ]}
]}
</script>
</head>
<body>
<header>
<p>Example Guides</p>
<nav>
<a href="/guides/schema-markup">Schema markup guide</a>
<a href="/guides/writing-tips">Content writing tips</a>
<a href="/guides/site-speed">Site speed checklist</a>
</nav>
</header>
<main>
<article>
<h1>How to Optimize Content for AI Answer Engines</h1>
<p>Answer engines read the web and give short replies to real questions. If your page is clear, they can quote it. This guide shows the steps we use to make a page easy to find, easy to read, and easy to trust.</p>
<img src="https://example.com/img/headings.png" alt="Diagram of a page with clear headings" width="800" height="450">
<h2>What is answer engine optimization?</h2>
<p>It is the work of shaping a page so that a bot can pull out a fact and use it in a reply. A good page has one main topic. It has a clear title and a short summary. Each part starts with a plain heading. The first lines under each heading give the answer in a few words. Then the rest of the text adds the detail.</p>
<h2>Why does structure matter?</h2>
<p>Bots do not read like people. They scan the code, the headings, and the lists. When the parts of a page are marked well, the bot can tell the name of the site, the date of the post, and who wrote it. That is why we add schema to each page. It costs little time and it helps a lot.</p>
<ul>
<li>Use one H1 that names the topic.</li>
<li>Keep each section short and on point.</li>
<li>Add a list when you give steps or facts.</li>
<li>Show the date and the name of the author.</li>
</ul>
<p>Lists help too. A list breaks a long idea into small bits that are easy to scan. Tables work well for prices, specs, and plans.</p>
<h2>How to get started</h2>
<p>Start with the pages that get the most visits. Read each one out loud. If a line is hard to say, cut it in two. Add a short answer at the top of each part. Check that the page loads fast and works on a phone. Then add the markup and test it with a free tool. Do this for a few pages each week and track what you see in the results.</p>
<img src="https://example.com/img/checklist.png" alt="Checklist of steps for a first audit" width="800" height="450" loading="lazy">
<p>You do not need a big team to do this well. One person with a plan can fix ten pages in a day. The key is to keep the words plain and the layout clean. Small changes add up over time, and the gains last.</p>
</article>
</main>
<footer>
<p>Written by Jane Doe. Last updated on <time datetime="2024-05-01">May 1, 2024</time>.</p>
<a href="/about">About our team</a>
</footer>
</body>
</html>
"""

# Only the basics: title, meta description, one H1, three H2s, a typed JSON-LD
# block and an alt-texted image. No canonical, viewport, social or lang tags.
MINIMAL_ARTICLE_HTML = """<html>
<head>
<title>Plain Steps to Make Your Pages Easy to Answer</title>
<meta name="description" content="A short guide to pages that answer engines can read and quote: one clear title, a plain summary, simple headings, and short blocks of prose.">
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "Article", "headline": "Plain Steps to Make Your Pages Easy to Answer"}
</script>
</head>
<body>
<h1>Plain Steps to Make Your Pages Easy to Answer</h1>
<p>Answer engines read a page and give a short reply to the person who asked. They like pages that say one thing well. This guide walks through the few steps that make a page easy for them to read, trust, and quote.</p>
<img src="https://example.com/img/outline.png" alt="Outline of a page with a title and three parts">
<h2>Start with the title</h2>
<p>The title is the first thing a bot reads. Keep it between thirty and sixty letters and make it name the topic in plain words. Use the same words in the one main heading at the top of the page, so the two agree.</p>
<p>Then write a short summary for the meta tag. Two lines are enough. Say what the page is for and who it helps. A bot will often use this text as it is, so read it out loud and cut any word you do not need.</p>
<h2>Write in short parts</h2>
<p>Break the page into parts, and give each part a heading that says what it holds. Three or four parts are fine for most pages. Put the answer in the first lines of each part and add the detail after it.</p>
<p>Keep the lines short. A good line has fewer than twenty words and uses words a child would know. Long words and long lines slow the reader down, and they slow the bot down too. Plain text is easy to quote.</p>
<h2>Mark up and serve the page</h2>
<p>Add a small block of structured data to the head of the page. It tells the bot what kind of page this is and what it is called. Check that the block is valid, since a bot will skip a block it cannot read.</p>
<p>Serve the page over a safe link and send the text in the first load, not after a script runs. Give each image a short note that says what it shows. Then test the page with a free tool and fix what it finds.</p>
<p>You do not need a big team for this. One person with a plan can fix a few pages each week. Start with the pages that get the most visits, and keep a short list of what you changed and when.</p>
</body>
</html>
"""

SCENARIO_B_HTML = (
    "<html><body><p>"
    "Comprehensive organizational infrastructure modernization initiatives necessitate "
    "considerable interdepartmental collaboration, sophisticated technological "
    "implementation methodologies, meticulous operational documentation, continuous "
    "systematic performance evaluation. "
    "Furthermore, international competitive environments increasingly demand "
    "extraordinary organizational adaptability, innovative strategic experimentation, "
    "comprehensive analytical capabilities, responsible environmental stewardship, "
    "institutional accountability."
    "</p></body></html>"
)

CSR_HTML = (
    "<html><head><title>Dashboard</title></head><body>"
    '<div id="root"></div>'
    '<script src="/static/js/main.4f2a.js"></script>'
    "</body></html>"
)


def make_payload(url: str, html: str, status_code: int = 200, **metadata) -> dict:
    """Build a raw provider payload shaped like a Firecrawl crawl result."""
    meta = {"sourceURL": url, "statusCode": status_code}
    meta.update(metadata)
    return {"html": html, "markdown": "", "metadata": meta}


@pytest.fixture
def scenario_a_html() -> str:
    return SCENARIO_A_HTML


@pytest.fixture
def scenario_b_html() -> str:
    return SCENARIO_B_HTML


@pytest.fixture
def csr_html() -> str:
    return CSR_HTML


@pytest.fixture
def minimal_article_html() -> str:
    return MINIMAL_ARTICLE_HTML


@pytest.fixture
def payload_factory():
    """Factory for raw provider payloads."""
    return make_payload


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway SQLite database, with inline processing."""
    return Settings(
        _env_file=None,
        database_url_override=f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}",
        firecrawl_api_key="fc-test-key",
        firecrawl_base_url="https://firecrawl.test",
        diagnostics_enabled=False,
        process_in_background=False,
        page_processing_concurrency=1,
        log_format="console",
    )


@pytest.fixture
async def session_factory(test_settings: Settings):
    """Session factory over a freshly created schema."""
    engine = create_engine_for_url(test_settings.database_url)
    await init_models(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> ResultStore:
    return ResultStore(session_factory)


@pytest.fixture
def signal_fetcher(test_settings: Settings) -> SiteSignalFetcher:
    """Fetcher for a site that publishes neither robots.txt nor llms.txt."""
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="not found"))
    return SiteSignalFetcher(test_settings, transport=transport)


@pytest.fixture
def fake_provider_class():
    return FakeCrawlProvider


@pytest.fixture
def make_orchestrator(test_settings: Settings, store: ResultStore, signal_fetcher: SiteSignalFetcher):
    """Factory for orchestrators wired to the test store and a given provider."""

    def _make(
        provider: CrawlProvider,
        config: Optional[Settings] = None,
        annotator: Optional[DiagnosticAnnotator] = None,
    ) -> AuditOrchestrator:
        return AuditOrchestrator(
            provider=provider,
            store=store,
            config=config or test_settings,
            annotator=annotator or DiagnosticAnnotator(),
            signal_fetcher=signal_fetcher,
        )

    return _make
