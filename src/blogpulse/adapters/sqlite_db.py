"""
SQLite adapters for the analytics storage ports.

Every counter mutation is a single upsert statement
(INSERT ... ON CONFLICT DO UPDATE SET c = c + excluded.c), so concurrent
writers never lose increments. Connections wait on locks for up to
BUSY_TIMEOUT_SECONDS instead of failing.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, date, datetime, timedelta
from typing import Any

from blogpulse.core.entities import (
    DailyPostStat,
    PageViewEvent,
    PostEngagementStat,
    Session,
    SourceCategory,
    TrafficEvent,
    Visitor,
)
from blogpulse.core.ports.db import BREAKDOWN_DIMENSIONS, DAILY_COUNTERS, ENGAGEMENT_COUNTERS

BUSY_TIMEOUT_SECONDS = 10.0

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def to_iso(dt: datetime | None) -> str | None:
    """Serialize as ISO-8601 UTC so string order is time order."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """Base class for SQLite repositories."""

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path, timeout=BUSY_TIMEOUT_SECONDS)
        conn.row_factory = dict_factory
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def _query(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        finally:
            if self._should_close():
                conn.close()

    def _query_one(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> dict[str, Any] | None:
        rows = self._query(sql, params)
        return rows[0] if rows else None

    def _execute(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> int:
        """Run one write statement; returns rowcount."""
        conn = self._get_conn()
        try:
            cursor = conn.execute(sql, params)
            if self._should_close():
                conn.commit()
            return cursor.rowcount
        finally:
            if self._should_close():
                conn.close()


def connect(db_path: str) -> sqlite3.Connection:
    """Shared connection for tests and scripts (row factory applied)."""
    conn = sqlite3.connect(db_path, timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False)
    conn.row_factory = dict_factory
    return conn


# -----------------------------------------------------------------------------
# Visitors
# -----------------------------------------------------------------------------


class SQLiteVisitorRepo(SQLiteRepoBase):
    """SQLite implementation of VisitorRepoPort."""

    def get(self, visitor_id: str) -> Visitor | None:
        row = self._query_one("SELECT * FROM visitors WHERE visitor_id = ?", (visitor_id,))
        return self._map_row(row) if row else None

    def insert_or_get(self, visitor: Visitor) -> tuple[Visitor, bool]:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """
                INSERT INTO visitors (
                    visitor_id, first_source, referrer, landing_path, user_id,
                    created_at, last_seen_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(visitor_id) DO NOTHING
                """,
                (
                    visitor.visitor_id,
                    visitor.first_source.value,
                    visitor.referrer,
                    visitor.landing_path,
                    visitor.user_id,
                    to_iso(visitor.created_at),
                    to_iso(visitor.last_seen_at),
                ),
            )
            inserted = cursor.rowcount == 1
            if self._should_close():
                conn.commit()
            row = conn.execute(
                "SELECT * FROM visitors WHERE visitor_id = ?", (visitor.visitor_id,)
            ).fetchone()
            return self._map_row(row), inserted
        finally:
            if self._should_close():
                conn.close()

    def touch(self, visitor_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        self._execute(
            """
            UPDATE visitors
            SET last_seen_at = ?, user_id = COALESCE(user_id, ?)
            WHERE visitor_id = ?
            """,
            (to_iso(seen_at), user_id, visitor_id),
        )

    def count(self) -> int:
        row = self._query_one("SELECT COUNT(*) AS n FROM visitors")
        return row["n"] if row else 0

    def _map_row(self, row: dict[str, Any]) -> Visitor:
        return Visitor(
            visitor_id=row["visitor_id"],
            first_source=SourceCategory(row["first_source"]),
            referrer=row["referrer"],
            landing_path=row["landing_path"],
            user_id=row["user_id"],
            created_at=parse_dt(row["created_at"]),
            last_seen_at=parse_dt(row["last_seen_at"]),
        )


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------


class SQLiteSessionRepo(SQLiteRepoBase):
    """SQLite implementation of SessionRepoPort."""

    def get(self, session_id: str) -> Session | None:
        row = self._query_one("SELECT * FROM user_sessions WHERE session_id = ?", (session_id,))
        return self._map_row(row) if row else None

    def latest_for_visitor(self, visitor_id: str) -> Session | None:
        row = self._query_one(
            """
            SELECT * FROM user_sessions WHERE visitor_id = ?
            ORDER BY started_at DESC, rowid DESC LIMIT 1
            """,
            (visitor_id,),
        )
        return self._map_row(row) if row else None

    def create(self, session: Session) -> Session:
        self._execute(
            """
            INSERT INTO user_sessions (
                session_id, visitor_id, user_id, source, landing_path,
                started_at, last_seen_at, ended_at, page_count, user_agent, ip
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.session_id,
                session.visitor_id,
                session.user_id,
                session.source.value,
                session.landing_path,
                to_iso(session.started_at),
                to_iso(session.last_seen_at),
                to_iso(session.ended_at),
                session.page_count,
                session.user_agent,
                session.ip,
            ),
        )
        return session

    def touch(self, session_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        self._execute(
            """
            UPDATE user_sessions
            SET page_count = page_count + 1,
                last_seen_at = ?,
                user_id = COALESCE(user_id, ?)
            WHERE session_id = ?
            """,
            (to_iso(seen_at), user_id, session_id),
        )

    def end(self, session_id: str, ended_at: datetime) -> None:
        self._execute(
            "UPDATE user_sessions SET ended_at = COALESCE(ended_at, ?) WHERE session_id = ?",
            (to_iso(ended_at), session_id),
        )

    def list_sessions(
        self,
        source: str | None = None,
        user_id: str | None = None,
        visitor_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Session]:
        query = "SELECT * FROM user_sessions WHERE 1=1"
        params: list[Any] = []

        if source:
            query += " AND source = ?"
            params.append(source)
        if user_id:
            query += " AND user_id = ?"
            params.append(user_id)
        if visitor_id:
            query += " AND visitor_id = ?"
            params.append(visitor_id)

        query += " ORDER BY started_at DESC, rowid DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        return [self._map_row(r) for r in self._query(query, params)]

    def append_event(self, event: PageViewEvent) -> None:
        self._execute(
            """
            INSERT INTO session_events (
                session_id, occurred_at, path, referrer, source, ip, user_agent
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.session_id,
                to_iso(event.occurred_at),
                event.path,
                event.referrer,
                event.source.value if event.source else None,
                event.ip,
                event.user_agent,
            ),
        )

    def list_events(self, session_id: str) -> list[PageViewEvent]:
        rows = self._query(
            "SELECT * FROM session_events WHERE session_id = ? ORDER BY id",
            (session_id,),
        )
        return [
            PageViewEvent(
                session_id=r["session_id"],
                occurred_at=parse_dt(r["occurred_at"]),
                path=r["path"],
                referrer=r["referrer"],
                source=SourceCategory(r["source"]) if r["source"] else None,
                ip=r["ip"],
                user_agent=r["user_agent"],
            )
            for r in rows
        ]

    def count_events(self, session_id: str) -> int:
        row = self._query_one(
            "SELECT COUNT(*) AS n FROM session_events WHERE session_id = ?", (session_id,)
        )
        return row["n"] if row else 0

    def count_started_since(self, since: datetime) -> int:
        row = self._query_one(
            "SELECT COUNT(*) AS n FROM user_sessions WHERE started_at >= ?", (to_iso(since),)
        )
        return row["n"] if row else 0

    def count_active(self, now: datetime, timeout: timedelta) -> int:
        row = self._query_one(
            """
            SELECT COUNT(*) AS n FROM user_sessions
            WHERE ended_at IS NULL AND last_seen_at >= ?
            """,
            (to_iso(now - timeout),),
        )
        return row["n"] if row else 0

    def count_started_by_day(self, since: datetime) -> dict[date, dict[str, int]]:
        # started_at is ISO-8601 UTC, so its first 10 chars are the UTC day
        rows = self._query(
            """
            SELECT substr(started_at, 1, 10) AS day, source, COUNT(*) AS n
            FROM user_sessions WHERE started_at >= ?
            GROUP BY day, source
            """,
            (to_iso(since),),
        )
        counts: dict[date, dict[str, int]] = {}
        for r in rows:
            counts.setdefault(date.fromisoformat(r["day"]), {})[r["source"]] = r["n"]
        return counts

    def _map_row(self, row: dict[str, Any]) -> Session:
        return Session(
            session_id=row["session_id"],
            visitor_id=row["visitor_id"],
            user_id=row["user_id"],
            source=SourceCategory(row["source"]),
            landing_path=row["landing_path"],
            started_at=parse_dt(row["started_at"]),
            last_seen_at=parse_dt(row["last_seen_at"]),
            ended_at=parse_dt(row["ended_at"]),
            page_count=row["page_count"],
            user_agent=row["user_agent"],
            ip=row["ip"],
        )


# -----------------------------------------------------------------------------
# Traffic log
# -----------------------------------------------------------------------------


class SQLiteTrafficRepo(SQLiteRepoBase):
    """SQLite implementation of TrafficRepoPort."""

    def append(self, event: TrafficEvent) -> None:
        self._execute(
            """
            INSERT INTO traffic_events (occurred_at, source, referrer, path, user_agent, ip)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                to_iso(event.occurred_at),
                event.source.value,
                event.referrer,
                event.path,
                event.user_agent,
                event.ip,
            ),
        )

    def count_by_source(self, since: datetime) -> dict[str, int]:
        rows = self._query(
            """
            SELECT source, COUNT(*) AS n FROM traffic_events
            WHERE occurred_at >= ? GROUP BY source
            """,
            (to_iso(since),),
        )
        return {r["source"]: r["n"] for r in rows}

    def top_referrers(
        self,
        since: datetime,
        source: str = "other",
        limit: int = 5,
    ) -> list[tuple[str | None, int]]:
        rows = self._query(
            """
            SELECT NULLIF(referrer, '') AS referrer, COUNT(*) AS n
            FROM traffic_events
            WHERE occurred_at >= ? AND source = ?
            GROUP BY NULLIF(referrer, '')
            ORDER BY n DESC, referrer
            LIMIT ?
            """,
            (to_iso(since), source, limit),
        )
        return [(r["referrer"], r["n"]) for r in rows]

    def list_events(
        self,
        since: datetime,
        source: str | None = None,
        ref: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TrafficEvent]:
        query = "SELECT * FROM traffic_events WHERE occurred_at >= ?"
        params: list[Any] = [to_iso(since)]

        if source:
            query += " AND source = ?"
            params.append(source)
        if ref:
            query += " AND LOWER(referrer) LIKE ? ESCAPE '\\'"
            params.append(f"%{_escape_like(ref.lower())}%")

        query += " ORDER BY occurred_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])
        return [
            TrafficEvent(
                id=r["id"],
                occurred_at=parse_dt(r["occurred_at"]),
                source=SourceCategory(r["source"]),
                referrer=r["referrer"],
                path=r["path"],
                user_agent=r["user_agent"],
                ip=r["ip"],
            )
            for r in self._query(query, params)
        ]


# -----------------------------------------------------------------------------
# Engagement
# -----------------------------------------------------------------------------


class SQLiteEngagementStatRepo(SQLiteRepoBase):
    """
    SQLite implementation of EngagementStatRepoPort.

    Counter names are interpolated into SQL, so they are checked against the
    port whitelists first.
    """

    def increment(
        self,
        post_id: str,
        counters: dict[str, int],
        seen_at: datetime | None = None,
    ) -> None:
        unknown = set(counters) - ENGAGEMENT_COUNTERS
        if unknown:
            raise ValueError(f"Unknown engagement counters: {sorted(unknown)}")

        cols = sorted(counters)
        seen = to_iso(seen_at)
        insert_cols = ", ".join(["post_id", *cols, "first_view_at", "last_view_at", "updated_at"])
        placeholders = ", ".join("?" * (len(cols) + 4))
        updates = ", ".join(f"{c} = {c} + excluded.{c}" for c in cols)
        if updates:
            updates += ", "

        self._execute(
            f"""
            INSERT INTO post_engagement_stats ({insert_cols}) VALUES ({placeholders})
            ON CONFLICT(post_id) DO UPDATE SET
                {updates}
                first_view_at = COALESCE(first_view_at, excluded.first_view_at),
                last_view_at = COALESCE(excluded.last_view_at, last_view_at),
                updated_at = excluded.updated_at
            """,
            (post_id, *(counters[c] for c in cols), seen, seen, to_iso(datetime.now(UTC))),
        )

    def add_time_sample(self, post_id: str, seconds: float) -> None:
        # SET expressions read the pre-update row, so the mean uses the old n
        self._execute(
            """
            INSERT INTO post_engagement_stats (post_id, time_samples, avg_time_on_page, updated_at)
            VALUES (?, 1, ?, ?)
            ON CONFLICT(post_id) DO UPDATE SET
                avg_time_on_page = avg_time_on_page
                    + (excluded.avg_time_on_page - avg_time_on_page) / (time_samples + 1),
                time_samples = time_samples + 1,
                updated_at = excluded.updated_at
            """,
            (post_id, float(seconds), to_iso(datetime.now(UTC))),
        )

    def increment_breakdown(self, post_id: str, dimension: str, key: str, amount: int = 1) -> None:
        if dimension not in BREAKDOWN_DIMENSIONS:
            raise ValueError(f"Unknown breakdown dimension: {dimension}")
        self._execute(
            """
            INSERT INTO post_engagement_breakdowns (post_id, dimension, key, count)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(post_id, dimension, key) DO UPDATE SET count = count + excluded.count
            """,
            (post_id, dimension, key, amount),
        )

    def increment_daily(self, post_id: str, stat_date: date, counters: dict[str, int]) -> None:
        unknown = set(counters) - DAILY_COUNTERS
        if unknown:
            raise ValueError(f"Unknown daily counters: {sorted(unknown)}")

        cols = sorted(counters)
        insert_cols = ", ".join(["post_id", "stat_date", *cols])
        placeholders = ", ".join("?" * (len(cols) + 2))
        updates = ", ".join(f"{c} = {c} + excluded.{c}" for c in cols)

        self._execute(
            f"""
            INSERT INTO post_daily_stats ({insert_cols}) VALUES ({placeholders})
            ON CONFLICT(post_id, stat_date) DO UPDATE SET {updates}
            """,
            (post_id, stat_date.isoformat(), *(counters[c] for c in cols)),
        )

    def get(self, post_id: str) -> PostEngagementStat | None:
        row = self._query_one("SELECT * FROM post_engagement_stats WHERE post_id = ?", (post_id,))
        if row is None:
            return None
        return self._map_row(row, self._breakdowns(post_id))

    def list_stats(self) -> list[PostEngagementStat]:
        rows = self._query("SELECT * FROM post_engagement_stats ORDER BY post_id")
        return [self._map_row(r, self._breakdowns(r["post_id"])) for r in rows]

    def list_daily(self, post_id: str, since: date) -> list[DailyPostStat]:
        rows = self._query(
            """
            SELECT * FROM post_daily_stats
            WHERE post_id = ? AND stat_date >= ?
            ORDER BY stat_date
            """,
            (post_id, since.isoformat()),
        )
        return [
            DailyPostStat(
                post_id=r["post_id"],
                stat_date=date.fromisoformat(r["stat_date"]),
                views=r["views"],
                unique_visitors=r["unique_visitors"],
                completions=r["completions"],
                shares=r["shares"],
            )
            for r in rows
        ]

    def reset(self, post_id: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM post_engagement_stats WHERE post_id = ?", (post_id,))
            conn.execute("DELETE FROM post_engagement_breakdowns WHERE post_id = ?", (post_id,))
            conn.execute("DELETE FROM post_daily_stats WHERE post_id = ?", (post_id,))
            if self._should_close():
                conn.commit()
        finally:
            if self._should_close():
                conn.close()

    def _breakdowns(self, post_id: str) -> dict[str, dict[str, int]]:
        result: dict[str, dict[str, int]] = {}
        rows = self._query(
            "SELECT dimension, key, count FROM post_engagement_breakdowns WHERE post_id = ?",
            (post_id,),
        )
        for r in rows:
            result.setdefault(r["dimension"], {})[r["key"]] = r["count"]
        return result

    def _map_row(self, row: dict[str, Any], breakdowns: dict[str, dict[str, int]]) -> PostEngagementStat:
        return PostEngagementStat(
            post_id=row["post_id"],
            total_views=row["total_views"],
            unique_visitors=row["unique_visitors"],
            scroll_25_percent=row["scroll_25_percent"],
            scroll_50_percent=row["scroll_50_percent"],
            scroll_75_percent=row["scroll_75_percent"],
            scroll_100_percent=row["scroll_100_percent"],
            total_shares=row["total_shares"],
            cta_clicks=row["cta_clicks"],
            time_samples=row["time_samples"],
            avg_time_on_page=row["avg_time_on_page"],
            first_view_at=parse_dt(row["first_view_at"]),
            last_view_at=parse_dt(row["last_view_at"]),
            breakdowns=breakdowns,
        )


class SQLitePostCatalog(SQLiteRepoBase):
    """Reads the CMS blog_posts table."""

    def exists(self, post_id: str) -> bool:
        row = self._query_one(
            "SELECT 1 AS found FROM blog_posts WHERE id = ? AND deleted_at IS NULL",
            (post_id,),
        )
        return row is not None

    def get_title(self, post_id: str) -> str | None:
        row = self._query_one("SELECT title FROM blog_posts WHERE id = ?", (post_id,))
        return row["title"] if row else None

    def list_posts(self) -> list[tuple[str, str | None]]:
        rows = self._query("SELECT id, title FROM blog_posts WHERE deleted_at IS NULL ORDER BY id")
        return [(r["id"], r["title"]) for r in rows]

    def add(self, post_id: str, title: str, slug: str | None = None) -> None:
        """Register a post (CMS sync, tests)."""
        self._execute(
            """
            INSERT INTO blog_posts (id, title, slug) VALUES (?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET title = excluded.title, slug = excluded.slug
            """,
            (post_id, title, slug),
        )
