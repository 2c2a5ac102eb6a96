"""Database operations for the QuickBrew pipeline.

This module provides SQLite-based storage for categories, articles, their
summaries and the per-category ranked feed cache. It is the only shared
mutable resource of the pipeline.

Database Schema:
    category table:
        - id (INTEGER, PK), slug (TEXT, UNIQUE), name (TEXT)

    article table:
        - id (INTEGER, PK)
        - url (TEXT, UNIQUE): dedup key; duplicate inserts are dropped
        - title, lede, source_name, source_domain, image_url (TEXT)
        - published_at (INTEGER): publication time (Unix epoch, UTC)
        - category_id (INTEGER, FK category)
        - created_at (INTEGER): insert time (Unix epoch)

    summary table:
        - article_id (INTEGER, UNIQUE, FK article): at most one per article
        - bullets (TEXT): JSON array of 5 strings
        - why_it_matters, model_version (TEXT), quality_score (REAL)

    feed_cache table:
        - (category_id, rank) PK -> article_id
        - Rewritten wholesale by the keeper, ranks dense from 1

    article_like table:
        - Like rows maintained outside the pipeline; only counted here

Features:
    - WAL mode for concurrent read access while jobs write
    - Idempotent article insert (ON CONFLICT(url) DO NOTHING)
    - All sqlite3 failures surface as PersistenceError
    - Context manager support for auto-cleanup
"""

import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterator, Sequence

from errors import PersistenceError
from models.article import Article, Category, NewArticle
from models.feed import CacheEntry, FeedItem, FeedPage, StoryView
from models.summary import Summary

logger = logging.getLogger(__name__)

FEED_DEFAULT_LIMIT = 20
FEED_MAX_LIMIT = 50

_ARTICLE_COLUMNS = (
    "a.id, a.url, a.title, a.lede, a.source_name, a.source_domain, "
    "a.image_url, a.published_at, a.category_id"
)


def _to_epoch(dt: datetime) -> int:
    """Convert a datetime (naive = UTC) to Unix seconds."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def _from_epoch(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, timezone.utc)


def _row_to_article(row: sqlite3.Row) -> Article:
    return Article(
        id=row["id"],
        url=row["url"],
        title=row["title"],
        lede=row["lede"] or "",
        source_name=row["source_name"],
        source_domain=row["source_domain"],
        image_url=row["image_url"],
        published_at=_from_epoch(row["published_at"]),
        category_id=row["category_id"],
    )


def _row_to_feed_fields(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "title": row["title"],
        "source": row["source_name"],
        "image_url": row["image_url"],
        "published_at": _from_epoch(row["published_at"]),
        "bullets": json.loads(row["bullets"]),
        "why_it_matters": row["why_it_matters"],
        "url": row["url"],
    }


class Database:
    """SQLite store for the ingestion, summarization and keeper stages.

    Example:
        >>> with Database("quickbrew.db") as db:
        ...     inserted = db.insert_articles(rows)
        ...     ready = db.ready_articles(category_id=1, days=3)
        ...     db.replace_cache(1, [a.id for a in ready[:50]])
    """

    SCHEMA = """
    -- Static category reference data
    CREATE TABLE IF NOT EXISTS category (
        id INTEGER PRIMARY KEY,
        slug TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL DEFAULT ''
    );

    -- One row per distinct article URL, never updated
    CREATE TABLE IF NOT EXISTS article (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT NOT NULL UNIQUE,
        title TEXT NOT NULL,
        lede TEXT NOT NULL DEFAULT '',
        source_name TEXT NOT NULL,
        source_domain TEXT NOT NULL,
        image_url TEXT,
        published_at INTEGER NOT NULL,
        category_id INTEGER REFERENCES category(id),
        created_at INTEGER NOT NULL
    );

    -- Keeper and summarize queries: newest articles per category
    CREATE INDEX IF NOT EXISTS idx_article_category_published
        ON article(category_id, published_at DESC);
    CREATE INDEX IF NOT EXISTS idx_article_published ON article(published_at DESC);

    -- Five-bullet summaries, at most one per article
    CREATE TABLE IF NOT EXISTS summary (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        article_id INTEGER NOT NULL UNIQUE REFERENCES article(id),
        bullets TEXT NOT NULL,
        why_it_matters TEXT NOT NULL,
        model_version TEXT NOT NULL,
        quality_score REAL NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL
    );

    -- Ranked feed cache, rebuilt per category by the keeper
    CREATE TABLE IF NOT EXISTS feed_cache (
        category_id INTEGER NOT NULL REFERENCES category(id),
        rank INTEGER NOT NULL CHECK (rank >= 1),
        article_id INTEGER NOT NULL REFERENCES article(id),
        PRIMARY KEY (category_id, rank)
    );

    -- Likes are written by the read layer; counted for story lookups
    CREATE TABLE IF NOT EXISTS article_like (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        article_id INTEGER NOT NULL REFERENCES article(id),
        user_id TEXT NOT NULL,
        created_at INTEGER NOT NULL,
        UNIQUE (article_id, user_id)
    );
    """

    path: Path
    conn: sqlite3.Connection

    def __init__(self, path: Path | str):
        """Open (and create if needed) the database.

        Args:
            path: Path to SQLite database file

        Raises:
            PersistenceError: If the file cannot be opened or initialized
        """
        self.path = Path(path)
        try:
            self.conn = sqlite3.connect(str(self.path))
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA foreign_keys=ON")
            self.conn.executescript(self.SCHEMA)
            self.conn.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self.path}: {e}") from e
        logger.debug("Database initialized | path=%s", self.path)

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        """Translate sqlite3 failures into PersistenceError."""
        try:
            yield
        except sqlite3.Error as e:
            self.conn.rollback()
            raise PersistenceError(f"{operation} failed: {e}") from e

    # === Categories ===

    def seed_categories(self, names: dict[str, str]) -> int:
        """Create missing categories.

        Args:
            names: slug -> display name

        Returns:
            Number of categories created
        """
        with self._guard("seed_categories"):
            before = self.conn.total_changes
            self.conn.executemany(
                "INSERT INTO category (slug, name) VALUES (?, ?) ON CONFLICT(slug) DO NOTHING",
                list(names.items()),
            )
            self.conn.commit()
            return self.conn.total_changes - before

    def categories(self) -> list[Category]:
        """Return all categories ordered by id."""
        with self._guard("categories"):
            cursor = self.conn.execute("SELECT id, slug, name FROM category ORDER BY id")
            return [Category(id=r["id"], slug=r["slug"], name=r["name"]) for r in cursor.fetchall()]

    def category_map(self) -> dict[str, int]:
        """Return slug -> id for all categories."""
        return {c.slug: c.id for c in self.categories()}

    def category_id(self, slug: str) -> int | None:
        with self._guard("category_id"):
            row = self.conn.execute("SELECT id FROM category WHERE slug = ?", (slug,)).fetchone()
            return row["id"] if row else None

    # === Articles ===

    def latest_published_at(self, category_id: int) -> datetime | None:
        """Return the ingestion watermark: newest published_at in a category."""
        with self._guard("latest_published_at"):
            row = self.conn.execute(
                "SELECT MAX(published_at) AS latest FROM article WHERE category_id = ?",
                (category_id,),
            ).fetchone()
        if row is None or row["latest"] is None:
            return None
        return _from_epoch(row["latest"])

    def insert_articles(self, rows: Sequence[NewArticle]) -> int:
        """Insert articles, silently dropping URLs that already exist.

        Args:
            rows: Normalized articles

        Returns:
            Number of genuinely new rows
        """
        if not rows:
            return 0
        now = int(time.time())
        with self._guard("insert_articles"):
            before = self.conn.total_changes
            self.conn.executemany(
                """
                INSERT INTO article
                (url, title, lede, source_name, source_domain, image_url,
                 published_at, category_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO NOTHING
                """,
                [
                    (
                        r.url,
                        r.title,
                        r.lede,
                        r.source_name,
                        r.source_domain,
                        r.image_url,
                        _to_epoch(r.published_at),
                        r.category_id,
                        now,
                    )
                    for r in rows
                ],
            )
            self.conn.commit()
            inserted = self.conn.total_changes - before
        logger.debug("Articles inserted | offered=%d inserted=%d", len(rows), inserted)
        return inserted

    def get_article(self, article_id: int) -> Article | None:
        with self._guard("get_article"):
            row = self.conn.execute(
                f"SELECT {_ARTICLE_COLUMNS} FROM article a WHERE a.id = ?",
                (article_id,),
            ).fetchone()
        return _row_to_article(row) if row else None

    def ready_articles(
        self,
        category_id: int,
        days: int,
        limit: int = 300,
        now: datetime | None = None,
    ) -> list[Article]:
        """Summarized articles of a category within the last N days, newest first.

        Args:
            category_id: Category to read
            days: Lookback window in days
            limit: Maximum rows returned
            now: Reference time (defaults to current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = _to_epoch(now - timedelta(days=days))
        with self._guard("ready_articles"):
            cursor = self.conn.execute(
                f"""
                SELECT {_ARTICLE_COLUMNS}
                FROM article a
                JOIN summary s ON s.article_id = a.id
                WHERE a.category_id = ? AND a.published_at >= ?
                ORDER BY a.published_at DESC, a.id DESC
                LIMIT ?
                """,
                (category_id, cutoff, limit),
            )
            return [_row_to_article(r) for r in cursor.fetchall()]

    def unsummarized_articles(
        self,
        limit: int,
        category_id: int | None = None,
        scan: int = 400,
    ) -> list[Article]:
        """Most recently published articles that have no summary yet.

        Only the `scan` most recent articles (of the category, or overall when
        category_id is None) are considered.

        Args:
            limit: Maximum rows returned
            category_id: Restrict to one category
            scan: Depth of the recent-article lookback
        """
        if limit <= 0:
            return []
        where = "WHERE category_id = ?" if category_id is not None else ""
        params: list[Any] = [category_id] if category_id is not None else []
        with self._guard("unsummarized_articles"):
            cursor = self.conn.execute(
                f"""
                SELECT {_ARTICLE_COLUMNS}
                FROM (
                    SELECT * FROM article {where}
                    ORDER BY published_at DESC, id DESC
                    LIMIT ?
                ) a
                LEFT JOIN summary s ON s.article_id = a.id
                WHERE s.id IS NULL
                ORDER BY a.published_at DESC, a.id DESC
                LIMIT ?
                """,
                (*params, scan, limit),
            )
            return [_row_to_article(r) for r in cursor.fetchall()]

    # === Summaries ===

    def save_summary(self, summary: Summary) -> bool:
        """Persist a summary.

        Returns:
            True if stored, False if the article already had a summary
        """
        with self._guard("save_summary"):
            cursor = self.conn.execute(
                """
                INSERT INTO summary
                (article_id, bullets, why_it_matters, model_version, quality_score, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(article_id) DO NOTHING
                """,
                (
                    summary.article_id,
                    json.dumps(summary.bullets, ensure_ascii=False),
                    summary.why_it_matters,
                    summary.model_version,
                    summary.quality_score,
                    int(time.time()),
                ),
            )
            self.conn.commit()
            stored = cursor.rowcount == 1
        logger.debug("Summary saved | article_id=%d stored=%s", summary.article_id, stored)
        return stored

    def get_summary(self, article_id: int) -> Summary | None:
        with self._guard("get_summary"):
            row = self.conn.execute(
                """
                SELECT article_id, bullets, why_it_matters, model_version, quality_score, created_at
                FROM summary WHERE article_id = ?
                """,
                (article_id,),
            ).fetchone()
        if row is None:
            return None
        return Summary(
            article_id=row["article_id"],
            bullets=json.loads(row["bullets"]),
            why_it_matters=row["why_it_matters"],
            model_version=row["model_version"],
            quality_score=row["quality_score"],
            created_at=_from_epoch(row["created_at"]),
        )

    # === Feed cache ===

    def replace_cache(self, category_id: int, article_ids: Sequence[int]) -> list[CacheEntry]:
        """Replace a category's cache with a ranked list.

        All existing rows for the category are deleted, then rank 1..len is
        assigned following the order of article_ids.

        Returns:
            The written cache entries
        """
        entries = [
            CacheEntry(category_id=category_id, article_id=article_id, rank=i)
            for i, article_id in enumerate(article_ids, start=1)
        ]
        with self._guard("replace_cache"):
            self.conn.execute("DELETE FROM feed_cache WHERE category_id = ?", (category_id,))
            if entries:
                self.conn.executemany(
                    "INSERT INTO feed_cache (category_id, rank, article_id) VALUES (?, ?, ?)",
                    [(e.category_id, e.rank, e.article_id) for e in entries],
                )
            self.conn.commit()
        return entries

    def cache_entries(self, category_id: int) -> list[CacheEntry]:
        """Return a category's cache rows ordered by rank."""
        with self._guard("cache_entries"):
            cursor = self.conn.execute(
                "SELECT category_id, article_id, rank FROM feed_cache WHERE category_id = ? ORDER BY rank",
                (category_id,),
            )
            return [
                CacheEntry(category_id=r["category_id"], article_id=r["article_id"], rank=r["rank"])
                for r in cursor.fetchall()
            ]

    # === Read layer ===

    def feed_page(
        self,
        slug: str,
        cursor: int = 1,
        limit: int = FEED_DEFAULT_LIMIT,
    ) -> FeedPage | None:
        """Read a rank window of a category's cached feed.

        Args:
            slug: Category slug
            cursor: First rank to return (clamped to >= 1)
            limit: Page size (clamped to 1..50)

        Returns:
            FeedPage, or None for an unknown category
        """
        category_id = self.category_id(slug.strip().lower())
        if category_id is None:
            return None

        limit = min(max(limit, 1), FEED_MAX_LIMIT)
        start_rank = max(cursor, 1)
        end_rank = start_rank + limit - 1

        with self._guard("feed_page"):
            rows = self.conn.execute(
                """
                SELECT c.rank, a.id, a.title, a.url, a.source_name, a.image_url,
                       a.published_at, s.bullets, s.why_it_matters
                FROM feed_cache c
                JOIN article a ON a.id = c.article_id
                JOIN summary s ON s.article_id = a.id
                WHERE c.category_id = ? AND c.rank BETWEEN ? AND ?
                ORDER BY c.rank
                """,
                (category_id, start_rank, end_rank),
            ).fetchall()

        items = [FeedItem(**_row_to_feed_fields(r)) for r in rows]
        next_cursor = end_rank + 1 if len(items) == limit else None
        return FeedPage(items=items, next_cursor=next_cursor)

    def get_story(self, article_id: int) -> StoryView | None:
        """Look up one summarized article with its like count."""
        with self._guard("get_story"):
            row = self.conn.execute(
                """
                SELECT a.id, a.title, a.url, a.source_name, a.image_url, a.published_at,
                       s.bullets, s.why_it_matters,
                       (SELECT COUNT(*) FROM article_like l WHERE l.article_id = a.id) AS like_count
                FROM article a
                JOIN summary s ON s.article_id = a.id
                WHERE a.id = ?
                """,
                (article_id,),
            ).fetchone()
        if row is None:
            return None
        return StoryView(**_row_to_feed_fields(row), like_count=row["like_count"])

    # === Insights ===

    def stats(self) -> dict[str, int]:
        """Get store totals.

        Returns:
            Dictionary with article, summary and cached item counts
        """
        with self._guard("stats"):
            row = self.conn.execute(
                """
                SELECT (SELECT COUNT(*) FROM article) AS articles,
                       (SELECT COUNT(*) FROM summary) AS summaries,
                       (SELECT COUNT(*) FROM feed_cache) AS cached_items
                """
            ).fetchone()
        return {
            "articles": row["articles"],
            "summaries": row["summaries"],
            "cached_items": row["cached_items"],
        }

    def category_insights(self, days: int = 3, now: datetime | None = None) -> list[dict[str, Any]]:
        """Per-category cache size, recent unsummarized backlog and newest article.

        Args:
            days: Backlog lookback in days
            now: Reference time (defaults to current UTC time)
        """
        now = now or datetime.now(timezone.utc)
        cutoff = _to_epoch(now - timedelta(days=days))
        with self._guard("category_insights"):
            rows = self.conn.execute(
                """
                SELECT c.slug,
                       (SELECT COUNT(*) FROM feed_cache f WHERE f.category_id = c.id) AS cache_count,
                       (SELECT COUNT(*) FROM article a
                          LEFT JOIN summary s ON s.article_id = a.id
                         WHERE a.category_id = c.id AND a.published_at >= ? AND s.id IS NULL)
                         AS backlog_unsummarized_recent,
                       (SELECT MAX(a.published_at) FROM article a WHERE a.category_id = c.id)
                         AS newest_published_at
                FROM category c
                ORDER BY c.id
                """,
                (cutoff,),
            ).fetchall()
        return [
            {
                "category": r["slug"],
                "cache_count": r["cache_count"],
                "backlog_unsummarized_recent": r["backlog_unsummarized_recent"],
                "newest_published_at": (
                    _from_epoch(r["newest_published_at"]).isoformat()
                    if r["newest_published_at"] is not None
                    else None
                ),
            }
            for r in rows
        ]

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self) -> "Database":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
