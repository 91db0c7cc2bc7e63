"""Tests for utility helpers and configuration."""
import pytest

from slimpage.config import VIEWPORTS, PipelineConfig
from slimpage.utils import format_size, is_http_url, normalize_page_url, resolve_url, url_variants


class TestFormatSize:
    @pytest.mark.parametrize(
        "value, expected",
        [(0, "0B"), (512, "512B"), (1536, "1.5KB"), (5 * 1024 * 1024, "5.0MB"), ("unknown", "unknown")],
    )
    def test_format(self, value, expected):
        assert format_size(value) == expected


class TestUrlHelpers:
    def test_variants_deduplicated(self):
        assert url_variants("https://example.com/a.css") == ["https://example.com/a.css"]

    def test_variants_escape_ampersand(self):
        assert url_variants("https://example.com/?a=1&b=2") == [
            "https://example.com/?a=1&b=2",
            "https://example.com/?a=1&amp;b=2",
        ]

    def test_is_http_url(self):
        assert is_http_url("https://example.com/")
        assert not is_http_url("data:text/plain,hi")
        assert not is_http_url("blob:https://example.com/x")

    def test_normalize_page_url(self):
        assert normalize_page_url("https://example.com") == "https://example.com/"
        assert normalize_page_url("https://example.com/a?b=1") == "https://example.com/a?b=1"

    def test_normalize_page_url_drops_fragment(self):
        assert normalize_page_url("https://example.com/#top") == "https://example.com/"
        assert normalize_page_url("https://example.com#top") == "https://example.com/"
        assert normalize_page_url("https://example.com/a?b=1#c") == "https://example.com/a?b=1"

    def test_resolve_url_matches_browser_encoding(self):
        assert resolve_url("my bg.png", "https://x.test/css/") == "https://x.test/css/my%20bg.png"
        assert resolve_url("/a%20b.png", "https://x.test/css/") == "https://x.test/a%20b.png"


class TestPipelineConfig:
    def test_defaults(self):
        config = PipelineConfig(url="https://example.com")
        assert config.url == "https://example.com/"
        assert config.viewport == VIEWPORTS["mobile"]
        assert config.viewport.width == 360
        assert config.headless
