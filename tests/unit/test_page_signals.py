"""Unit tests for on-page signal extraction."""

import pytest

from aeo_audit.analysis.normalizer import normalize_page
from aeo_audit.analysis.page_signals import count_syllables, extract_signals, flesch_reading_ease, iter_schema_types


def _page(url: str, html: str, **metadata):
    meta = {"sourceURL": url}
    meta.update(metadata)
    return normalize_page({"html": html, "metadata": meta})


@pytest.mark.unit
class TestReadabilityHelpers:
    """Test syllable and Flesch helpers."""

    @pytest.mark.parametrize(
        "word, expected",
        [("the", 1), ("cat", 1), ("table", 2), ("make", 1), ("reading", 2), ("optimization", 5)],
    )
    def test_count_syllables(self, word: str, expected: int) -> None:
        """Test approximate syllable counts."""
        assert count_syllables(word) == expected

    def test_flesch_empty(self) -> None:
        """Test that no words score zero."""
        assert flesch_reading_ease([], 0) == 0.0

    def test_flesch_simple_text_is_easy(self) -> None:
        """Test that short one-syllable sentences score high."""
        words = "The cat sat on the mat and the dog ran".split()
        assert flesch_reading_ease(words, 2) > 90

    def test_iter_schema_types_descends_into_graph(self) -> None:
        """Test @type collection from nested @graph blocks."""
        blocks = [
            {"@type": ["Article", "NewsArticle"]},
            {"@graph": [{"@type": "Organization"}, {"@type": "BreadcrumbList"}]},
        ]
        assert sorted(iter_schema_types(blocks)) == ["Article", "BreadcrumbList", "NewsArticle", "Organization"]


@pytest.mark.unit
class TestExtractSignals:
    """Test extract_signals on representative pages."""

    def test_well_structured_page(self, scenario_a_html: str) -> None:
        """Test signals of a complete, well-structured article."""
        signals = extract_signals(_page("https://example.com/guides/aeo-basics", scenario_a_html))

        assert signals.is_https is True
        assert signals.title == "How to Optimize Content for AI Answer Engines"
        assert 30 <= signals.title_length <= 60
        assert 120 <= signals.meta_description_length <= 160
        assert signals.h1_count == 1
        assert signals.h2_count == 3
        assert signals.heading_levels == [1, 2, 2, 2]
        assert signals.question_heading_count == 3
        assert signals.answer_after_heading is True
        assert signals.word_count >= 300
        assert signals.flesch_score >= 60
        assert signals.avg_sentence_length <= 25
        assert signals.paragraph_count >= 3
        assert signals.list_count == 1
        assert signals.canonical_url == "https://example.com/guides/aeo-basics"
        assert signals.has_viewport is True
        assert signals.lang == "en"
        assert signals.has_charset is True
        assert signals.has_favicon is True
        assert signals.internal_link_count == 4
        assert signals.generic_link_count == 0
        assert signals.insecure_resource_count == 0
        assert signals.hreflang_count == 1
        assert signals.og_image == "https://example.com/img/aeo-basics.png"
        assert signals.twitter_card == "summary_large_image"
        assert signals.image_count == 2
        assert signals.images_with_descriptive_alt == 2
        assert signals.images_with_dimensions == 2
        assert signals.images_lazy == 1
        assert signals.landmark_count == 4
        assert signals.content_before_script is True
        assert {"Organization", "BreadcrumbList", "Article", "FAQPage"} <= set(signals.schema_types)
        assert signals.untyped_schema_block_count == 0
        assert signals.schema_has_author is True
        assert signals.schema_has_dates is True
        assert signals.has_author_meta is True
        assert signals.has_date_meta is True

    def test_bare_page(self, scenario_b_html: str) -> None:
        """Test signals of a bare page with a single paragraph."""
        signals = extract_signals(_page("http://example.com/plain", scenario_b_html))

        assert signals.is_https is False
        assert signals.title is None
        assert signals.title_length == 0
        assert signals.meta_description is None
        assert signals.h1_count == 0
        assert signals.heading_levels == []
        assert signals.word_count == 40
        assert signals.sentence_count == 2
        assert signals.flesch_score < 60
        assert signals.paragraph_count == 1
        assert signals.schema_block_count == 0
        assert signals.landmark_count == 0

    def test_links_and_mixed_content(self) -> None:
        """Test internal, generic and insecure resource counting."""
        html = """
        <html><body>
        <a href="/about">About the company</a>
        <a href="https://example.com/contact">Contact sales</a>
        <a href="https://other.org/">click here</a>
        <a href="#top">Back to top</a>
        <a href="mailto:hi@example.com">Email</a>
        <img src="http://example.com/insecure.png" alt="photo">
        </body></html>
        """
        signals = extract_signals(_page("https://example.com/page", html))
        assert signals.link_count == 5
        assert signals.internal_link_count == 2
        assert signals.generic_link_count == 1
        assert signals.insecure_resource_count == 1
        assert signals.images_with_alt == 1
        assert signals.images_with_descriptive_alt == 0

    def test_robots_meta_directives(self) -> None:
        """Test noindex and noai detection from robots meta tags."""
        html = '<html><head><meta name="robots" content="noindex, noai"></head><body></body></html>'
        signals = extract_signals(_page("https://example.com/hidden", html))
        assert signals.noindex is True
        assert signals.noai is True

    def test_forms_and_buttons(self) -> None:
        """Test accessibility counters for form fields and buttons."""
        html = """
        <form>
          <label for="email">Email</label><input id="email" type="email">
          <input type="text" name="unlabelled">
          <input type="hidden" name="token">
          <button>Send</button>
          <button></button>
        </form>
        """
        signals = extract_signals(_page("https://example.com/form", html))
        assert signals.form_field_count == 2
        assert signals.labelled_form_field_count == 1
        assert signals.button_count == 2
        assert signals.named_button_count == 1

    def test_content_after_script_only(self, csr_html: str) -> None:
        """Test that an empty app shell has no content before its scripts."""
        signals = extract_signals(_page("https://example.com/app", csr_html))
        assert signals.content_before_script is False
        assert signals.title == "Dashboard"

    def test_document_uses_text(self) -> None:
        """Test that documents without HTML are measured from their text."""
        page = normalize_page(
            {
                "markdown": "Quarterly report. Revenue grew. Costs fell.",
                "metadata": {"sourceURL": "https://example.com/q3.pdf"},
            }
        )
        signals = extract_signals(page)
        assert signals.word_count == 6
        assert signals.sentence_count == 3
        assert signals.content_before_script is True
        assert signals.html_length == 0
