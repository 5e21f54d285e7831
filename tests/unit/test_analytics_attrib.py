"""
Tests for traffic source attribution.

Covers the priority order (hint, empty referrer, platform host, same site,
other), hint normalization and hostile referrer input.
"""

from __future__ import annotations

import pytest

from blogpulse.core.entities import SourceCategory
from blogpulse.core.services.analytics_attrib import (
    AttributionConfig,
    AttributionService,
    attribute,
    classify,
    match_hint,
    match_platform,
    normalize_hint,
    parse_host,
)

ORIGIN = "https://blog.example.com"


class TestParseHost:
    def test_full_url(self) -> None:
        assert parse_host("https://www.Google.com/search?q=x") == "www.google.com"

    def test_scheme_less(self) -> None:
        assert parse_host("instagram.com/p/abc") == "instagram.com"

    @pytest.mark.parametrize("value", [None, "", "   ", "http://", "http://[::1"])
    def test_unparseable_is_none(self, value: str | None) -> None:
        assert parse_host(value) is None


class TestHints:
    def test_normalize_strips_and_lowercases(self) -> None:
        assert normalize_hint("  IG ") == "ig"

    def test_normalize_takes_value_after_equals(self) -> None:
        assert normalize_hint("utm_source=Insta") == "insta"

    def test_normalize_truncates(self) -> None:
        assert len(normalize_hint("x" * 500)) == 64

    @pytest.mark.parametrize(
        "hint,expected",
        [
            ("ig", SourceCategory.INSTAGRAM),
            ("instagram_story", SourceCategory.INSTAGRAM),
            ("fb", SourceCategory.FACEBOOK),
            ("yt", SourceCategory.YOUTUBE),
            ("goog", SourceCategory.GOOGLE),
        ],
    )
    def test_recognized(self, hint: str, expected: SourceCategory) -> None:
        assert match_hint(hint) == expected

    @pytest.mark.parametrize("hint", [None, "", "newsletter", "twitter"])
    def test_unrecognized_is_ignored(self, hint: str | None) -> None:
        assert match_hint(hint) is None


class TestPlatformHosts:
    @pytest.mark.parametrize(
        "host,expected",
        [
            ("l.instagram.com", SourceCategory.INSTAGRAM),
            ("m.facebook.com", SourceCategory.FACEBOOK),
            ("youtu.be", SourceCategory.YOUTUBE),
            ("www.google.co.uk", SourceCategory.GOOGLE),
            ("google.de", SourceCategory.GOOGLE),
        ],
    )
    def test_known_platforms(self, host: str, expected: SourceCategory) -> None:
        assert match_platform(host) == expected

    @pytest.mark.parametrize("host", ["notgoogle.com", "instagram.com.evil.net", "example.org"])
    def test_lookalikes_do_not_match(self, host: str) -> None:
        assert match_platform(host) is None


class TestPriority:
    def test_hint_wins_on_first_view(self) -> None:
        assert classify("https://www.google.com/", "ig", ORIGIN) == SourceCategory.INSTAGRAM

    def test_hint_ignored_after_first_view(self) -> None:
        result = classify("https://www.google.com/", "ig", ORIGIN, first_view=False)
        assert result == SourceCategory.GOOGLE

    def test_empty_referrer_first_view_is_direct(self) -> None:
        assert classify(None, None, ORIGIN) == SourceCategory.DIRECT
        assert classify("   ", None, ORIGIN) == SourceCategory.DIRECT

    def test_empty_referrer_later_view_is_other(self) -> None:
        assert classify(None, None, ORIGIN, first_view=False) == SourceCategory.OTHER

    def test_platform_referrer(self) -> None:
        assert classify("https://m.facebook.com/story", None, ORIGIN) == SourceCategory.FACEBOOK

    def test_same_site_is_direct(self) -> None:
        assert classify("https://www.blog.example.com/posts/1", None, ORIGIN) == SourceCategory.DIRECT

    def test_unknown_referrer_is_other(self) -> None:
        result = attribute("https://news.ycombinator.com/item", None, ORIGIN)
        assert result.source == SourceCategory.OTHER
        assert result.referrer_host == "news.ycombinator.com"

    @pytest.mark.parametrize("referrer", ["::::", "http://[bad", "not a url at all", "\x00\x01"])
    def test_malformed_referrer_is_other(self, referrer: str) -> None:
        assert classify(referrer, None, ORIGIN) == SourceCategory.OTHER

    def test_config_origin_used_when_beacon_has_none(self) -> None:
        service = AttributionService(AttributionConfig(site_origin=ORIGIN))
        assert service.classify("https://blog.example.com/a", None) == SourceCategory.DIRECT


class TestIdempotence:
    @pytest.mark.parametrize(
        "referrer,hint",
        [
            (None, None),
            ("https://google.com", None),
            ("https://l.instagram.com/", "fb"),
            ("garbage", "unknown"),
            ("https://blog.example.com/x", None),
        ],
    )
    def test_same_input_same_category(self, referrer: str | None, hint: str | None) -> None:
        results = {classify(referrer, hint, ORIGIN) for _ in range(5)}
        assert len(results) == 1
