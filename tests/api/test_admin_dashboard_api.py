from __future__ import annotations

from datetime import timedelta

from blogpulse.components.cache import CacheKeys

URL = "/api/admin/dashboard"


def test_empty_dashboard(client, admin_headers):
    data = client.get(URL, headers=admin_headers).json()

    assert data["visitors_total"] == 0
    assert data["sessions_24h"] == 0
    assert data["active_sessions"] == 0
    assert sum(data["traffic_7d"].values()) == 0
    assert data["top_posts"] == []


def test_headline_numbers(client, admin_headers, clock):
    for source in ("ig", "yt"):
        client.cookies.clear()
        client.post("/api/track", json={"path": "/blog/post-1", "source": source})
        client.post("/api/track/blog/post-1/engagement", json={"event_type": "view"})

    clock.advance(minutes=45)
    client.cookies.clear()
    client.post("/api/track", json={"path": "/"})

    data = client.get(URL, headers=admin_headers).json()

    assert data["visitors_total"] == 3
    assert data["sessions_24h"] == 3
    assert data["active_sessions"] == 1
    assert data["traffic_7d"]["instagram"] == 1
    assert data["traffic_7d"]["youtube"] == 1
    assert data["traffic_7d"]["direct"] == 1
    assert data["top_posts"] == [
        {"post_id": "post-1", "title": "First Post", "total_views": 2, "engagement_score": 0.0}
    ]


def test_cached_until_next_beacon(client, admin_headers, clock):
    client.post("/api/track", json={"path": "/"})
    first = client.get(URL, headers=admin_headers).json()

    clock.advance(seconds=5)
    assert client.get(URL, headers=admin_headers).json()["generated_at"] == first["generated_at"]

    client.cookies.clear()
    client.post("/api/track", json={"path": "/"})
    second = client.get(URL, headers=admin_headers).json()

    assert second["visitors_total"] == 2
    assert second["generated_at"] != first["generated_at"]


def start_session(client, **body) -> None:
    client.cookies.clear()
    client.post("/api/track", json={"path": "/", **body})


# --- Cache clearing ---


def test_clear_cache_drops_dashboard_snapshot(client, admin_headers, cache):
    client.get(URL, headers=admin_headers)
    client.get("/api/admin/traffic/summary", headers=admin_headers)

    response = client.post(f"{URL}/clear-cache", headers=admin_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "topic": "dashboard", "cleared": 1}
    assert cache.get(CacheKeys.DASHBOARD_METRICS) is None
    assert cache.get(CacheKeys.traffic_summary("7d")) is not None


def test_clear_cache_all_topics(client, admin_headers, cache):
    client.get(URL, headers=admin_headers)
    client.get("/api/admin/traffic/summary", headers=admin_headers)

    data = client.post(f"{URL}/clear-cache", params={"topic": "all"}, headers=admin_headers).json()

    assert data["cleared"] == 2
    assert cache.stats().size == 0


def test_clear_cache_then_dashboard_is_recomputed(client, admin_headers, clock):
    first = client.get(URL, headers=admin_headers).json()
    clock.advance(seconds=5)

    client.post(f"{URL}/clear-cache", headers=admin_headers)

    assert client.get(URL, headers=admin_headers).json()["generated_at"] != first["generated_at"]


def test_clear_cache_unknown_topic(client, admin_headers):
    response = client.post(f"{URL}/clear-cache", params={"topic": "everything"}, headers=admin_headers)
    assert response.status_code == 400


def test_clear_cache_requires_admin(client):
    assert client.post(f"{URL}/clear-cache").status_code == 401


# --- Sessions timeline ---


def test_sessions_timeline_by_day_and_source(client, admin_headers, clock):
    today = clock.now_utc()
    clock.set(today - timedelta(days=2))
    start_session(client, source="yt")
    clock.set(today)
    start_session(client, source="ig")
    start_session(client)

    data = client.get(f"{URL}/sessions-timeline", params={"days": 3}, headers=admin_headers).json()

    assert data["days"] == 3
    assert [p["day"] for p in data["points"]] == ["2026-02-28", "2026-03-01", "2026-03-02"]
    assert data["points"][0]["by_source"]["youtube"] == 1
    assert data["points"][0]["total"] == 1
    assert data["points"][1]["total"] == 0
    assert data["points"][2]["by_source"]["instagram"] == 1
    assert data["points"][2]["by_source"]["direct"] == 1
    assert data["points"][2]["total"] == 2
    assert len(data["points"][1]["by_source"]) == 6


def test_sessions_timeline_defaults_and_cap(client, admin_headers):
    default = client.get(f"{URL}/sessions-timeline", headers=admin_headers).json()
    capped = client.get(f"{URL}/sessions-timeline", params={"days": 90}, headers=admin_headers).json()

    assert len(default["points"]) == 7
    assert capped["days"] == 30
    assert len(capped["points"]) == 30


def test_sessions_timeline_excludes_older_sessions(client, admin_headers, clock):
    today = clock.now_utc()
    clock.set(today - timedelta(days=10))
    start_session(client)
    clock.set(today)

    data = client.get(f"{URL}/sessions-timeline", params={"days": 7}, headers=admin_headers).json()
    assert sum(p["total"] for p in data["points"]) == 0


def test_sessions_timeline_days_must_be_positive(client, admin_headers):
    response = client.get(f"{URL}/sessions-timeline", params={"days": 0}, headers=admin_headers)
    assert response.status_code == 422
