"""
Tests for the admin blog analytics API.
"""

from __future__ import annotations

import pytest

from blogpulse.components.cache import CacheKeys

BASE = "/api/admin/blog-analytics"


def engage(client, post_id: str, event_type: str, **event_data) -> None:
    client.post(
        f"/api/track/blog/{post_id}/engagement",
        json={"event_type": event_type, "event_data": event_data},
    )


def view(client, post_id: str, **body) -> None:
    """A fresh visitor lands on a post and views it."""
    client.cookies.clear()
    client.post("/api/track", json={"path": f"/blog/{post_id}", **body})
    engage(client, post_id, "view")


@pytest.fixture
def seeded(client):
    for _ in range(3):
        view(client, "post-1")
    engage(client, "post-1", "scroll_checkpoint", depth=100)
    engage(client, "post-1", "share", platform="twitter")
    engage(client, "post-1", "cta_click", target="newsletter")
    engage(client, "post-1", "time_on_page", seconds=90)
    view(client, "post-2", source="ig")
    return client


class TestOverview:
    def test_empty(self, client, admin_headers) -> None:
        data = client.get(BASE, headers=admin_headers).json()
        assert data["total_posts"] == 0
        assert data["posts"] == []
        assert data["avg_engagement_score"] == 0.0

    def test_totals(self, seeded, admin_headers) -> None:
        data = seeded.get(BASE, headers=admin_headers).json()

        assert data["total_posts"] == 2
        assert data["total_views"] == 4
        assert data["unique_visitors"] == 4
        assert data["total_shares"] == 1
        assert data["cta_clicks"] == 1
        assert [p["post_id"] for p in data["posts"]] == ["post-1", "post-2"]
        assert data["posts"][0]["title"] == "First Post"

    def test_engagement_event_refreshes_cached_overview(self, seeded, admin_headers, cache) -> None:
        assert seeded.get(BASE, headers=admin_headers).json()["total_views"] == 4
        assert cache.get(CacheKeys.BLOG_OVERVIEW) is not None

        view(seeded, "post-2")
        assert seeded.get(BASE, headers=admin_headers).json()["total_views"] == 5


class TestLeaderboard:
    def test_ranked_by_score(self, seeded, admin_headers) -> None:
        items = seeded.get(f"{BASE}/leaderboard", headers=admin_headers).json()["items"]

        assert [p["post_id"] for p in items] == ["post-1", "post-2"]
        scores = [p["engagement_score"] for p in items]
        assert scores == sorted(scores, reverse=True)
        assert all(0 <= s <= 100 for s in scores)

    def test_limit(self, seeded, admin_headers) -> None:
        items = seeded.get(f"{BASE}/leaderboard", params={"limit": 1}, headers=admin_headers).json()["items"]
        assert len(items) == 1

    def test_limit_bounds(self, client, admin_headers) -> None:
        assert client.get(f"{BASE}/leaderboard", params={"limit": 0}, headers=admin_headers).status_code == 422


class TestComparison:
    def test_every_post_listed_without_engagement(self, client, admin_headers) -> None:
        data = client.get(f"{BASE}/comparison", headers=admin_headers).json()

        assert [p["post_id"] for p in data["posts"]] == ["post-1", "post-2"]
        assert all(p["total_views"] == 0 for p in data["posts"])
        assert data["pagination"] == {
            "current_page": 1,
            "total_pages": 1,
            "total": 2,
            "limit": 20,
            "from_item": 1,
            "to_item": 2,
        }

    def test_default_sort_is_score_descending(self, seeded, admin_headers, catalog) -> None:
        catalog.register("post-3", "Third Post")

        data = seeded.get(f"{BASE}/comparison", headers=admin_headers).json()

        assert data["sort_by"] == "engagement_score"
        assert data["order"] == "desc"
        assert data["posts"][0]["post_id"] == "post-1"
        assert {p["post_id"] for p in data["posts"]} == {"post-1", "post-2", "post-3"}

    def test_sort_by_views_ascending(self, seeded, admin_headers) -> None:
        data = seeded.get(
            f"{BASE}/comparison", params={"sort_by": "total_views", "order": "ASC"}, headers=admin_headers
        ).json()

        assert data["order"] == "asc"
        assert [p["total_views"] for p in data["posts"]] == [1, 3]

    def test_sort_by_title(self, seeded, admin_headers) -> None:
        data = seeded.get(
            f"{BASE}/comparison", params={"sort_by": "title", "order": "desc"}, headers=admin_headers
        ).json()
        assert [p["title"] for p in data["posts"]] == ["Second Post", "First Post"]

    def test_unknown_sort_field_falls_back_to_score(self, seeded, admin_headers) -> None:
        data = seeded.get(
            f"{BASE}/comparison", params={"sort_by": "1; DROP TABLE"}, headers=admin_headers
        ).json()
        assert data["sort_by"] == "engagement_score"

    def test_paging(self, seeded, admin_headers) -> None:
        second = seeded.get(f"{BASE}/comparison", params={"limit": 1, "page": 2}, headers=admin_headers).json()
        beyond = seeded.get(f"{BASE}/comparison", params={"limit": 1, "page": 5}, headers=admin_headers).json()

        assert [p["post_id"] for p in second["posts"]] == ["post-2"]
        assert second["pagination"]["total_pages"] == 2
        assert second["pagination"]["from_item"] == 2
        assert second["pagination"]["to_item"] == 2
        assert beyond["posts"] == []
        assert beyond["pagination"]["from_item"] == 0

    def test_paging_bounds(self, client, admin_headers) -> None:
        assert client.get(f"{BASE}/comparison", params={"page": 0}, headers=admin_headers).status_code == 422
        assert client.get(f"{BASE}/comparison", params={"limit": 500}, headers=admin_headers).status_code == 422


class TestPostDetail:
    def test_metrics(self, seeded, admin_headers) -> None:
        data = seeded.get(f"{BASE}/post-1", headers=admin_headers).json()

        assert data["total_views"] == 3
        assert data["scroll_100_percent"] == 1
        assert data["avg_time_on_page"] == 90
        assert data["time_samples"] == 1
        assert 0 < data["engagement_score"] <= 100

    def test_known_post_without_events(self, client, admin_headers) -> None:
        data = client.get(f"{BASE}/post-2", headers=admin_headers).json()
        assert data["total_views"] == 0
        assert data["engagement_score"] == 0

    def test_unknown_post(self, client, admin_headers) -> None:
        for suffix in ("", "/audience", "/heatmap", "/timeline"):
            response = client.get(f"{BASE}/missing{suffix}", headers=admin_headers)
            assert response.status_code == 404, suffix

    def test_unknown_post_is_not_cached(self, client, admin_headers, cache) -> None:
        client.get(f"{BASE}/missing", headers=admin_headers)
        assert cache.get(CacheKeys.blog_post("missing")) is None

    def test_detail_cached_until_next_event(self, seeded, admin_headers) -> None:
        assert seeded.get(f"{BASE}/post-2", headers=admin_headers).json()["total_views"] == 1
        view(seeded, "post-2")
        assert seeded.get(f"{BASE}/post-2", headers=admin_headers).json()["total_views"] == 2


class TestBreakdowns:
    def test_audience(self, seeded, admin_headers) -> None:
        post_1 = seeded.get(f"{BASE}/post-1/audience", headers=admin_headers).json()
        post_2 = seeded.get(f"{BASE}/post-2/audience", headers=admin_headers).json()

        assert post_1["sources"] == {"direct": 3}
        assert post_1["shares"] == {"twitter": 1}
        assert post_1["cta"] == {"newsletter": 1}
        assert post_2["sources"] == {"instagram": 1}

    def test_unlisted_share_platforms_count_as_other(self, client, admin_headers) -> None:
        view(client, "post-1")
        for i in range(5):
            engage(client, "post-1", "share", platform=f"made-up-{i}")

        post_1 = client.get(f"{BASE}/post-1/audience", headers=admin_headers).json()
        assert post_1["shares"] == {"other": 5}

    def test_heatmap(self, seeded, admin_headers) -> None:
        data = seeded.get(f"{BASE}/post-1/heatmap", headers=admin_headers).json()

        assert data["total_views"] == 3
        assert data["scroll"] == {"0-25": 2, "25-50": 0, "50-75": 0, "75-100": 0, "100": 1}
        assert data["time_on_page"] == {"60-120s": 1}

    def test_timeline(self, seeded, admin_headers) -> None:
        data = seeded.get(f"{BASE}/post-1/timeline", params={"days": 7}, headers=admin_headers).json()

        assert data["days"] == 7
        assert len(data["points"]) == 7
        today = data["points"][-1]
        assert today["views"] == 3
        assert today["completions"] == 1
        assert today["shares"] == 1
        assert sum(p["views"] for p in data["points"][:-1]) == 0

    def test_timeline_bounds(self, seeded, admin_headers) -> None:
        response = seeded.get(f"{BASE}/post-1/timeline", params={"days": 400}, headers=admin_headers)
        assert response.status_code == 422


class TestReset:
    def test_reset_zeroes_counters(self, seeded, admin_headers) -> None:
        response = seeded.post(f"{BASE}/post-1/reset", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"post_id": "post-1", "reset": True}
        data = seeded.get(f"{BASE}/post-1", headers=admin_headers).json()
        assert data["total_views"] == 0
        assert data["total_shares"] == 0

    def test_reset_unknown_post(self, client, admin_headers) -> None:
        assert client.post(f"{BASE}/missing/reset", headers=admin_headers).status_code == 404

    def test_reset_requires_admin(self, client) -> None:
        assert client.post(f"{BASE}/post-1/reset").status_code == 401
