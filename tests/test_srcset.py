"""Tests for the srcset codec."""
import pytest

from slimpage.errors import ConflictingDescriptors, InvalidDescriptor, MissingUrl
from slimpage.models import SrcsetCandidate
from slimpage.srcset import parse, resolve, serialize


class TestParse:
    def test_width_and_density_descriptors(self):
        candidates = parse("small.jpg 480w, large.jpg 1080w")
        assert candidates == [
            SrcsetCandidate(url="large.jpg", width=1080),
            SrcsetCandidate(url="small.jpg", width=480),
        ]

    def test_density_is_float(self):
        (candidate,) = parse("hero.png 1.5x")
        assert candidate.density == 1.5
        assert candidate.width is None

    def test_bare_url_candidate(self):
        (candidate,) = parse("photo.jpg")
        assert candidate == SrcsetCandidate(url="photo.jpg")

    def test_duplicates_collapse(self):
        assert parse("a.jpg 100w, a.jpg 100w") == [SrcsetCandidate(url="a.jpg", width=100)]

    def test_comma_without_whitespace(self):
        candidates = parse("a.jpg 1x,b.jpg 2x")
        assert [c.url for c in candidates] == ["a.jpg", "b.jpg"]

    def test_data_uri_keeps_its_comma(self):
        (candidate,) = parse("data:image/png;base64,AAAA 2x")
        assert candidate.url == "data:image/png;base64,AAAA"
        assert candidate.density == 2

    def test_conflicting_descriptors(self):
        with pytest.raises(ConflictingDescriptors):
            parse("a.jpg 2x 100w")

    @pytest.mark.parametrize("value", ["a.jpg 0w", "a.jpg 0x", "a.jpg -2w", "a.jpg 100h", "a.jpg wx"])
    def test_invalid_descriptors(self, value):
        with pytest.raises(InvalidDescriptor):
            parse(value)

    def test_empty_value(self):
        assert parse("  ") == []


class TestSerialize:
    def test_renders_descriptors(self):
        text = serialize(
            [
                SrcsetCandidate(url="a.jpg", width=320),
                SrcsetCandidate(url="b.jpg", density=2.0),
                SrcsetCandidate(url="c.jpg", density=1.5),
            ]
        )
        assert text == "a.jpg 320w, b.jpg 2x, c.jpg 1.5x"

    def test_dedupes_rendered_strings(self):
        text = serialize([SrcsetCandidate(url="a.jpg"), SrcsetCandidate(url="a.jpg")])
        assert text == "a.jpg"

    def test_missing_url(self):
        with pytest.raises(MissingUrl):
            serialize([SrcsetCandidate(url=None, width=100)])

    @pytest.mark.parametrize(
        "value",
        [
            "a.jpg",
            "a.jpg 1x, b.jpg 2x",
            "img/a.webp 320w, img/b.webp 640w, img/c.webp 1280w",
            "https://cdn.example.com/a.jpg?w=100&q=80 100w",
        ],
    )
    def test_output_parses_again(self, value):
        rendered = serialize(parse(value))
        assert serialize(parse(rendered)) == rendered


class TestResolve:
    def test_candidates_become_absolute(self):
        value = resolve("/img/a.jpg 1x, b.jpg 2x", "https://example.com/news/")
        assert value == (
            "https://example.com/img/a.jpg 1x, https://example.com/news/b.jpg 2x"
        )

    def test_non_ascii_candidates_percent_encoded(self):
        value = resolve("Café.jpg 1x, data:image/gif;base64,R0lG 2x", "https://example.com/img/")
        assert value == "https://example.com/img/Caf%C3%A9.jpg 1x, data:image/gif;base64,R0lG 2x"
