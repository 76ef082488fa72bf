"""Tests for structural URL patterns and cap accounting."""

import pytest

from recon_crawler.dedup.pattern_registry import (
    MAX_SAMPLES,
    PatternRegistry,
    generalize_segment,
    structural_pattern,
)
from recon_crawler.utils.url_canonicalizer import canonicalize
from recon_crawler.utils.url_classifier import ValueType


class TestGeneralizeSegment:
    @pytest.mark.parametrize(
        ("segment", "expected"),
        [
            ("123", "{num}"),
            ("550e8400-e29b-41d4-a716-446655440000", "{uuid}"),
            ("5f2b9c1e8d7a6b4c3e2f1a0b9c8d7e6f", "{hash}"),
            ("p-42.html", "p-{num}.html"),
            ("item_7", "item_{num}"),
            ("page12", "page12"),
            ("2fa", "2fa"),
            ("about", "about"),
            ("", ""),
        ],
    )
    def test_rewrites(self, segment, expected):
        assert generalize_segment(segment) == expected

    def test_short_hex_is_not_a_hash(self):
        assert generalize_segment("deadbeef") == "deadbeef"


class TestVersionSegments:
    def test_api_versions_are_distinct_patterns(self):
        v1 = structural_pattern(canonicalize("https://a.com/api/v1/users"))
        v2 = structural_pattern(canonicalize("https://a.com/api/v2/users"))

        assert v1 != v2
        assert v1.text == "/api/v1/users"

    def test_each_version_gets_its_own_cap(self):
        registry = PatternRegistry({ValueType.API: 1})
        for version in ("v1", "v2", "v3"):
            pattern = structural_pattern(canonicalize(f"https://a.com/api/{version}/users"))
            assert registry.would_accept(pattern, ValueType.API)
            registry.record(pattern, ValueType.API, f"https://a.com/api/{version}/users")

        assert len(registry) == 3


class TestStructuralPattern:
    def test_query_values_are_blanked(self):
        pattern = structural_pattern(canonicalize("https://a.com/item?id=1&b=2"))

        assert pattern.text == "/item?b=&id="
        assert pattern.key == "https://a.com/item?b=&id="

    def test_numbered_pages_share_a_pattern(self):
        first = structural_pattern(canonicalize("https://a.com/p-1.html"))
        second = structural_pattern(canonicalize("https://a.com/p-377.html"))

        assert first == second
        assert str(first) == "/p-{num}.html"

    def test_trailing_slash_is_kept(self):
        assert structural_pattern(canonicalize("https://a.com/users/5/")).text == "/users/{num}/"

    def test_hosts_do_not_share_patterns(self):
        first = structural_pattern(canonicalize("https://a.com/p/1"))
        second = structural_pattern(canonicalize("https://b.a.com/p/1"))

        assert first.text == second.text
        assert first.key != second.key


class TestPatternRegistry:
    def test_cap_by_value_type(self):
        registry = PatternRegistry()
        pattern = structural_pattern(canonicalize("https://a.com/p/1"))

        for i in range(3):
            assert registry.would_accept(pattern, ValueType.NORMAL)
            registry.record(pattern, ValueType.NORMAL, f"https://a.com/p/{i}")

        assert not registry.would_accept(pattern, ValueType.NORMAL)
        entry = registry.get(pattern)
        assert entry is not None
        assert entry.count == 3
        assert entry.first_url == "https://a.com/p/0"

    def test_cap_fixed_by_first_type(self):
        registry = PatternRegistry()
        pattern = structural_pattern(canonicalize("https://a.com/logo.png"))
        registry.record(pattern, ValueType.STATIC, "https://a.com/logo.png")

        assert not registry.would_accept(pattern, ValueType.API)

    def test_samples_are_bounded(self):
        registry = PatternRegistry({ValueType.API: 50})
        pattern = structural_pattern(canonicalize("https://a.com/api/1"))
        for i in range(20):
            registry.record(pattern, ValueType.API, f"https://a.com/api/{i}")

        assert len(registry.get(pattern).samples) == MAX_SAMPLES

    def test_skip_counter(self):
        registry = PatternRegistry()
        pattern = structural_pattern(canonicalize("https://a.com/x/1"))
        registry.record(pattern, ValueType.STATIC, "https://a.com/x/1")
        registry.record_skip(pattern)
        registry.record_skip(pattern)

        assert registry.get_stats() == {"patterns": 1, "full_patterns": 1, "skipped": 2}
