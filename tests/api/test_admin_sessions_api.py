"""
Tests for the admin sessions API.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from blogpulse.components.cache import CacheKeys
from blogpulse.core.entities import Session, SourceCategory


def start_session(client, path: str = "/", **body) -> str:
    """New visitor, new session; returns the session id."""
    client.cookies.clear()
    response = client.post("/api/track", json={"path": path, **body})
    return response.cookies["ps_sid"]


class TestListSessions:
    def test_newest_first(self, client, admin_headers, clock) -> None:
        first = start_session(client)
        clock.advance(minutes=1)
        second = start_session(client, source="ig")

        response = client.get("/api/admin/sessions", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert [s["session_id"] for s in data["items"]] == [second, first]
        assert data["items"][0]["source"] == "instagram"
        assert data["limit"] == 50
        assert data["offset"] == 0

    def test_filter_by_source(self, client, admin_headers, clock) -> None:
        start_session(client)
        clock.advance(minutes=1)
        ig = start_session(client, source="ig")

        response = client.get("/api/admin/sessions", params={"source": "instagram"}, headers=admin_headers)
        assert [s["session_id"] for s in response.json()["items"]] == [ig]

    def test_filter_by_visitor(self, client, admin_headers, session_repo) -> None:
        sid = start_session(client)
        visitor_id = session_repo.get(sid).visitor_id
        start_session(client)

        response = client.get("/api/admin/sessions", params={"visitor_id": visitor_id}, headers=admin_headers)
        assert [s["session_id"] for s in response.json()["items"]] == [sid]

    def test_unknown_source_rejected(self, client, admin_headers) -> None:
        response = client.get("/api/admin/sessions", params={"source": "myspace"}, headers=admin_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 201}, {"offset": -1}])
    def test_bad_paging(self, client, admin_headers, params) -> None:
        response = client.get("/api/admin/sessions", params=params, headers=admin_headers)
        assert response.status_code == 422

    def test_paging(self, client, admin_headers, clock) -> None:
        ids = []
        for _ in range(3):
            ids.append(start_session(client))
            clock.advance(minutes=1)

        response = client.get("/api/admin/sessions", params={"limit": 2, "offset": 1}, headers=admin_headers)
        assert [s["session_id"] for s in response.json()["items"]] == [ids[1], ids[0]]

    def test_first_page_is_cached_until_next_beacon(self, client, admin_headers, cache, session_repo) -> None:
        start_session(client)
        client.get("/api/admin/sessions", headers=admin_headers)
        assert cache.get(CacheKeys.SESSIONS_RECENT) is not None

        # Written behind the API's back: still served from cache
        session_repo.create(
            Session(
                session_id="manual",
                visitor_id="v-manual",
                source=SourceCategory.DIRECT,
                started_at=session_repo.list_sessions()[0].started_at + timedelta(minutes=1),
                last_seen_at=session_repo.list_sessions()[0].started_at + timedelta(minutes=1),
            )
        )
        assert len(client.get("/api/admin/sessions", headers=admin_headers).json()["items"]) == 1

        start_session(client)
        assert len(client.get("/api/admin/sessions", headers=admin_headers).json()["items"]) == 3


class TestSessionDetail:
    def test_detail_and_state(self, client, admin_headers, clock) -> None:
        sid = start_session(client, path="/", source="yt")
        clock.advance(minutes=2)
        client.post("/api/track", json={"path": "/about"})

        response = client.get(f"/api/admin/sessions/{sid}", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "active"
        assert data["page_count"] == 2
        assert data["events_count"] == 2
        assert data["source"] == "youtube"
        assert data["landing_path"] == "/"
        assert data["ip"] == "testclient"

        clock.advance(minutes=31)
        assert client.get(f"/api/admin/sessions/{sid}", headers=admin_headers).json()["state"] == "ended"

    def test_unknown_session(self, client, admin_headers) -> None:
        assert client.get("/api/admin/sessions/nope", headers=admin_headers).status_code == 404
        assert client.get("/api/admin/sessions/nope/events", headers=admin_headers).status_code == 404

    def test_events_in_order(self, client, admin_headers, clock) -> None:
        sid = start_session(client, path="/", source="ig")
        clock.advance(minutes=1)
        client.post("/api/track", json={"path": "/posts/1", "referrer": "https://www.facebook.com/"})

        response = client.get(f"/api/admin/sessions/{sid}/events", headers=admin_headers)

        items = response.json()["items"]
        assert [e["path"] for e in items] == ["/", "/posts/1"]
        assert items[1]["source"] == "facebook"
