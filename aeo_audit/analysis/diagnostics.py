"""Best-effort diagnostic text for issues, generated by an external LLM."""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Any, Optional

from aeo_audit.analysis.llm_factory import create_llm
from aeo_audit.analysis.scoring import Issue
from aeo_audit.config.settings import Settings, settings as default_settings
from aeo_audit.utils.exceptions import DiagnosticError
from aeo_audit.utils.logging import get_logger

logger = get_logger(__name__)

MAX_DIAGNOSTIC_WORDS = 60

SYSTEM_PROMPT = (
    "You are an expert SEO/AEO technical specialist. For each error, provide a "
    "one-sentence explanation of why it matters and a one-sentence actionable fix. "
    "Keep it under 60 words total."
)


@dataclass(frozen=True)
class DiagnosticPromptFields:
    """Issue fields sent to the generator."""

    title: str
    description: str
    impact: str
    category: str
    parameters: Optional[dict] = None
    html_snippet: Optional[str] = None

    @classmethod
    def from_issue(cls, issue: Issue) -> "DiagnosticPromptFields":
        return cls(
            title=issue.title,
            description=issue.description,
            impact=issue.impact,
            category=issue.category,
            parameters=issue.rule_parameters or None,
            html_snippet=issue.html_snippet,
        )


def build_prompt(fields: DiagnosticPromptFields) -> str:
    """Render the fixed prompt template for one issue."""
    lines = [
        SYSTEM_PROMPT,
        "",
        f"Error: {fields.title}",
        f"Description: {fields.description}",
        f"Impact: {fields.impact}",
        f"Category: {fields.category}",
    ]
    if fields.parameters:
        lines.append(f"Parameters: {json.dumps(fields.parameters, default=str)}")
    if fields.html_snippet:
        lines.append(f"HTML Snippet: {fields.html_snippet[:200]}")
    lines.extend(["", "Provide a concise 1-2 sentence diagnostic and fix."])
    return "\n".join(lines)


def fallback_diagnostic(issue: Issue) -> str:
    return f"{issue.title}: {issue.description}"


class DiagnosticGenerator(ABC):
    """External short-text generator."""

    @abstractmethod
    async def generate(self, fields: DiagnosticPromptFields) -> str:
        """Return a short diagnostic for an issue."""


class OllamaDiagnosticGenerator(DiagnosticGenerator):
    """Generates diagnostics with a local Ollama model through langchain."""

    def __init__(self, config: Optional[Settings] = None, llm: Any = None) -> None:
        self.config = config or default_settings
        self.llm = llm or create_llm(
            self.config.diagnostic_model,
            temperature=0.2,
            timeout=self.config.diagnostic_timeout_seconds,
            config=self.config,
        )

    async def generate(self, fields: DiagnosticPromptFields) -> str:
        prompt = build_prompt(fields)
        # OllamaLLM.invoke is blocking
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(None, self.llm.invoke, prompt)
        if not isinstance(response, str):
            raise DiagnosticError(f"Unexpected LLM response type: {type(response).__name__}")
        return response


def build_diagnostic_generator(config: Optional[Settings] = None) -> Optional[DiagnosticGenerator]:
    """
    Build the configured diagnostic generator.

    Returns None when diagnostics are disabled or the client cannot be
    created; the annotator then falls back to templated text.
    """
    config = config or default_settings
    if not config.diagnostics_enabled:
        logger.info("Diagnostics disabled; using templated diagnostics")
        return None
    try:
        return OllamaDiagnosticGenerator(config)
    except DiagnosticError as e:
        logger.warning("Diagnostic generator unavailable", error=str(e))
        return None


def _clean(text: str) -> str:
    words = text.strip().split()
    if len(words) > MAX_DIAGNOSTIC_WORDS:
        words = words[:MAX_DIAGNOSTIC_WORDS]
    return " ".join(words)


class DiagnosticAnnotator:
    """
    Attaches a diagnostic to every issue.

    Each call is bounded by a timeout and a concurrency limit. Any failure
    yields the templated "{title}: {description}" text; annotate never raises
    and never drops or adds issues.
    """

    def __init__(
        self,
        generator: Optional[DiagnosticGenerator] = None,
        timeout: float = 8.0,
        concurrency: int = 4,
    ) -> None:
        self.generator = generator
        self.timeout = timeout
        self.concurrency = max(1, concurrency)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "DiagnosticAnnotator":
        config = config or default_settings
        return cls(
            generator=build_diagnostic_generator(config),
            timeout=config.diagnostic_timeout_seconds,
            concurrency=config.diagnostic_concurrency,
        )

    async def _annotate_one(self, issue: Issue, semaphore: asyncio.Semaphore) -> Issue:
        if self.generator is None:
            return replace(issue, diagnostic=fallback_diagnostic(issue))

        async with semaphore:
            try:
                text = await asyncio.wait_for(
                    self.generator.generate(DiagnosticPromptFields.from_issue(issue)),
                    timeout=self.timeout,
                )
                if not isinstance(text, str) or not text.strip():
                    raise DiagnosticError("Empty diagnostic")
                return replace(issue, diagnostic=_clean(text))
            except asyncio.TimeoutError:
                logger.warning("Diagnostic generation timed out", issue=issue.title, timeout=self.timeout)
            except Exception as e:
                logger.warning("Failed to generate diagnostic", issue=issue.title, error=str(e))
        return replace(issue, diagnostic=fallback_diagnostic(issue))

    async def annotate(self, issues: list[Issue]) -> list[Issue]:
        """
        Annotate issues with diagnostics.

        Args:
            issues: Issues to annotate

        Returns:
            New issues in the same order, each with a diagnostic
        """
        if not issues:
            return []
        semaphore = asyncio.Semaphore(self.concurrency)
        return list(await asyncio.gather(*(self._annotate_one(issue, semaphore) for issue in issues)))
