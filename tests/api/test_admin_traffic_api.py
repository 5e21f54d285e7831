"""
Tests for the admin traffic API.
"""

from __future__ import annotations

import pytest

from blogpulse.components.cache import CacheKeys
from blogpulse.core.entities import SourceCategory

ALL_SOURCES = {c.value for c in SourceCategory}


def beacon(client, path: str = "/", **body) -> None:
    client.cookies.clear()
    client.post("/api/track", json={"path": path, **body})


class TestSummary:
    def test_empty_summary_is_zero_filled(self, client, admin_headers) -> None:
        response = client.get("/api/admin/traffic/summary", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["range"] == "7d"
        assert data["total"] == 0
        assert set(data["by_source"]) == ALL_SOURCES
        assert all(n == 0 for n in data["by_source"].values())
        assert data["top_other_referrers"] == []

    def test_counts_by_source(self, client, admin_headers) -> None:
        beacon(client, source="ig")
        beacon(client, source="ig")
        beacon(client, referrer="https://www.google.com/")
        beacon(client)

        data = client.get("/api/admin/traffic/summary", headers=admin_headers).json()

        assert data["total"] == 4
        assert data["by_source"]["instagram"] == 2
        assert data["by_source"]["google"] == 1
        assert data["by_source"]["direct"] == 1

    def test_top_other_referrers(self, client, admin_headers) -> None:
        beacon(client, referrer="https://news.ycombinator.com/")
        beacon(client, referrer="https://news.ycombinator.com/")
        beacon(client, referrer="https://lobste.rs/")

        data = client.get("/api/admin/traffic/summary", headers=admin_headers).json()

        assert data["by_source"]["other"] == 3
        assert data["top_other_referrers"][0] == {"referrer": "https://news.ycombinator.com/", "count": 2}
        assert data["top_other_referrers"][1]["count"] == 1

    def test_range_excludes_older_events(self, client, admin_headers, clock) -> None:
        beacon(client)
        clock.advance(hours=2)
        beacon(client)

        hour = client.get("/api/admin/traffic/summary", params={"range": "1h"}, headers=admin_headers).json()
        week = client.get("/api/admin/traffic/summary", params={"range": "week"}, headers=admin_headers).json()

        assert hour["range"] == "1h"
        assert hour["total"] == 1
        assert week["range"] == "7d"
        assert week["total"] == 2

    @pytest.mark.parametrize("value", ["forever", "²", "٣x"])
    def test_unknown_range_falls_back_to_default(self, client, admin_headers, value) -> None:
        response = client.get("/api/admin/traffic/summary", params={"range": value}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["range"] == "7d"

    def test_new_beacon_refreshes_cached_summary(self, client, admin_headers, cache) -> None:
        beacon(client)
        assert client.get("/api/admin/traffic/summary", headers=admin_headers).json()["total"] == 1
        assert cache.get(CacheKeys.traffic_summary("7d")) is not None

        beacon(client)
        assert client.get("/api/admin/traffic/summary", headers=admin_headers).json()["total"] == 2


class TestEvents:
    def test_newest_first_with_counts(self, client, admin_headers, clock) -> None:
        beacon(client, path="/a")
        clock.advance(minutes=1)
        beacon(client, path="/b", source="ig")

        data = client.get("/api/admin/traffic/events", headers=admin_headers).json()

        assert [e["path"] for e in data["items"]] == ["/b", "/a"]
        assert data["by_source"]["instagram"] == 1
        assert data["by_source"]["direct"] == 1

    def test_filters(self, client, admin_headers) -> None:
        beacon(client, referrer="https://news.ycombinator.com/item?id=1")
        beacon(client, referrer="https://lobste.rs/")
        beacon(client, source="ig")

        by_ref = client.get("/api/admin/traffic/events", params={"ref": "YCombinator"}, headers=admin_headers)
        by_source = client.get("/api/admin/traffic/events", params={"source": "instagram"}, headers=admin_headers)

        assert [e["referrer"] for e in by_ref.json()["items"]] == ["https://news.ycombinator.com/item?id=1"]
        assert [e["source"] for e in by_source.json()["items"]] == ["instagram"]

    def test_unknown_source_rejected(self, client, admin_headers) -> None:
        response = client.get("/api/admin/traffic/events", params={"source": "myspace"}, headers=admin_headers)
        assert response.status_code == 400

    def test_days_wins_over_range_and_is_capped(self, client, admin_headers) -> None:
        both = client.get(
            "/api/admin/traffic/events", params={"days": 3, "range": "30d"}, headers=admin_headers
        ).json()
        capped = client.get("/api/admin/traffic/events", params={"days": 5000}, headers=admin_headers).json()

        assert both["range"] == "3d"
        assert capped["range"] == "365d"

    def test_days_must_be_positive(self, client, admin_headers) -> None:
        response = client.get("/api/admin/traffic/events", params={"days": 0}, headers=admin_headers)
        assert response.status_code == 422

    def test_paging(self, client, admin_headers, clock) -> None:
        for i in range(3):
            beacon(client, path=f"/p{i}")
            clock.advance(seconds=10)

        data = client.get(
            "/api/admin/traffic/events", params={"limit": 1, "offset": 1}, headers=admin_headers
        ).json()

        assert [e["path"] for e in data["items"]] == ["/p1"]
        assert data["limit"] == 1
        assert data["offset"] == 1
