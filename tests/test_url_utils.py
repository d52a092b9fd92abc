"""
Tests for link extraction and cleaning.
"""

from fundwire.common.url_utils import (
    clean_links,
    clean_model_links,
    dedupe,
    ensure_scheme,
    extract_links,
)


class TestExtractLinks:
    """Tests for extract_links()."""

    def test_bare_domain_and_url(self):
        assert extract_links("Website: acme.io Twitter: https://x.com/acme") == [
            "acme.io",
            "https://x.com/acme",
        ]

    def test_trailing_punctuation_removed(self):
        assert extract_links("Read more at https://acme.io/blog.") == ["https://acme.io/blog"]

    def test_no_links(self):
        assert extract_links("Acme raised $10M") == []
        assert extract_links("") == []


class TestCleanLinks:
    """Tests for clean_links() on pattern-parser output."""

    def test_filters_amounts_and_company_tokens(self):
        links = ["32.0M", "Boop.fun", "acme.io", "https://a.com", "acme.io"]
        assert clean_links(links) == ["https://acme.io", "https://a.com"]

    def test_unknown_suffix_without_scheme_dropped(self):
        assert clean_links(["acme.xyz"]) == []


class TestCleanModelLinks:
    """Tests for clean_model_links() on generation-service output."""

    def test_filters_non_links(self):
        links = ["10M", "Acme", "docs.acme.net", "https://x.com/a", 5, None]
        assert clean_model_links(links) == ["https://docs.acme.net", "https://x.com/a"]

    def test_deduplicates_after_scheme(self):
        assert clean_model_links(["acme.com", "https://acme.com"]) == ["https://acme.com"]


class TestHelpers:
    def test_ensure_scheme(self):
        assert ensure_scheme("acme.io") == "https://acme.io"
        assert ensure_scheme("http://acme.io") == "http://acme.io"

    def test_dedupe_keeps_first_seen_order(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]
