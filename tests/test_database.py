"""Store behaviour: idempotent ingestion, summaries, cache and read contract."""

from datetime import timedelta

import pytest

from conftest import NOW, VALID_SUMMARY, make_article
from database import Database
from errors import PersistenceError
from models.summary import Summary


def summarize(db: Database, article_id: int) -> bool:
    return db.save_summary(Summary(article_id=article_id, model_version="test", **VALID_SUMMARY))


def add_like(db: Database, article_id: int, user_id: str) -> None:
    db.conn.execute(
        "INSERT INTO article_like (article_id, user_id, created_at) VALUES (?, ?, 0)",
        (article_id, user_id),
    )
    db.conn.commit()


class TestCategories:

    def test_seed_is_idempotent(self, db):
        assert db.seed_categories({"tech": "Tech", "science": "Science"}) == 1
        assert db.category_id("science") is not None
        assert len(db.categories()) == 7

    def test_category_map(self, db):
        cmap = db.category_map()
        assert set(cmap) == {"business", "finance", "markets", "startups", "tech", "politics"}


class TestArticles:

    def test_insert_is_idempotent_by_url(self, db):
        rows = [make_article(i) for i in range(1, 4)]
        assert db.insert_articles(rows) == 3
        assert db.insert_articles(rows) == 0
        assert db.stats()["articles"] == 3

    def test_partial_overlap_counts_only_new(self, db):
        db.insert_articles([make_article(1), make_article(2)])
        assert db.insert_articles([make_article(2), make_article(3)]) == 1

    def test_duplicate_url_does_not_update(self, db):
        db.insert_articles([make_article(1)])
        changed = make_article(1).model_copy(update={"title": "Rewritten"})
        db.insert_articles([changed])
        assert db.get_article(1).title == "Story 1"

    def test_latest_published_at(self, db):
        assert db.latest_published_at(1) is None
        db.insert_articles([make_article(1), make_article(5)])
        assert db.latest_published_at(1) == NOW - timedelta(hours=1)

    def test_round_trip_preserves_utc(self, db):
        db.insert_articles([make_article(1)])
        article = db.get_article(1)
        assert article.published_at == NOW - timedelta(hours=1)
        assert article.published_at.tzinfo is not None

    def test_unsummarized_newest_first(self, db):
        db.insert_articles([make_article(i) for i in range(1, 6)])
        summarize(db, 1)
        picked = db.unsummarized_articles(limit=2)
        assert [a.id for a in picked] == [2, 3]

    def test_unsummarized_respects_scan_depth(self, db):
        db.insert_articles([make_article(i) for i in range(1, 6)])
        for article_id in (1, 2):
            summarize(db, article_id)
        # only the 2 most recent are scanned, and both are summarized
        assert db.unsummarized_articles(limit=10, scan=2) == []

    def test_unsummarized_by_category(self, db):
        db.insert_articles([make_article(1, category_id=1), make_article(2, category_id=2)])
        assert [a.id for a in db.unsummarized_articles(limit=10, category_id=2)] == [2]

    def test_ready_articles_window(self, db):
        db.insert_articles([
            make_article(1, published_at=NOW - timedelta(days=1)),
            make_article(2, published_at=NOW - timedelta(days=5)),
            make_article(3, published_at=NOW - timedelta(hours=2)),
        ])
        for article_id in (1, 2, 3):
            summarize(db, article_id)
        assert [a.id for a in db.ready_articles(1, days=3, now=NOW)] == [3, 1]
        assert [a.id for a in db.ready_articles(1, days=7, now=NOW)] == [3, 1, 2]


class TestSummaries:

    def test_at_most_one_summary_per_article(self, db):
        db.insert_articles([make_article(1)])
        assert summarize(db, 1) is True
        assert summarize(db, 1) is False
        assert db.stats()["summaries"] == 1

    def test_get_summary(self, db):
        db.insert_articles([make_article(1)])
        summarize(db, 1)
        stored = db.get_summary(1)
        assert stored.bullets == VALID_SUMMARY["bullets"]
        assert stored.model_version == "test"
        assert stored.quality_score == 0.0


class TestFeed:

    @pytest.fixture
    def cached(self, db):
        db.insert_articles([make_article(i, category_id=5) for i in range(1, 8)])
        for article_id in range(1, 8):
            summarize(db, article_id)
        db.replace_cache(5, list(range(1, 8)))
        return db

    def test_replace_cache_assigns_dense_ranks(self, cached):
        entries = cached.cache_entries(5)
        assert [e.rank for e in entries] == list(range(1, 8))
        assert [e.article_id for e in entries] == list(range(1, 8))

    def test_replace_cache_removes_old_rows(self, cached):
        cached.replace_cache(5, [3, 1])
        assert [(e.rank, e.article_id) for e in cached.cache_entries(5)] == [(1, 3), (2, 1)]

    def test_feed_page_full_window(self, cached):
        page = cached.feed_page("tech", cursor=1, limit=3)
        assert [item.id for item in page.items] == [1, 2, 3]
        assert page.next_cursor == 4
        assert page.items[0].source == "Example News"
        assert len(page.items[0].bullets) == 5

    def test_feed_page_last_window(self, cached):
        page = cached.feed_page("tech", cursor=6, limit=3)
        assert [item.id for item in page.items] == [6, 7]
        assert page.next_cursor is None

    def test_feed_page_clamps(self, cached):
        page = cached.feed_page("TECH", cursor=0, limit=500)
        assert len(page.items) == 7
        assert page.next_cursor is None
        assert len(cached.feed_page("tech", limit=0).items) == 1

    def test_feed_page_unknown_category(self, cached):
        assert cached.feed_page("sports") is None

    def test_feed_page_empty_category(self, cached):
        page = cached.feed_page("finance")
        assert page.items == []
        assert page.next_cursor is None

    def test_get_story_with_likes(self, cached):
        add_like(cached, 2, "u1")
        add_like(cached, 2, "u2")
        story = cached.get_story(2)
        assert story.like_count == 2
        assert story.url == "https://news.example.com/story-2"
        assert cached.get_story(3).like_count == 0

    def test_get_story_missing_or_unsummarized(self, db):
        db.insert_articles([make_article(1)])
        assert db.get_story(1) is None
        assert db.get_story(999) is None


class TestInsights:

    def test_category_insights(self, db):
        db.insert_articles([make_article(1, category_id=5), make_article(2, category_id=5)])
        summarize(db, 1)
        db.replace_cache(5, [1])
        tech = next(row for row in db.category_insights(days=3, now=NOW) if row["category"] == "tech")
        assert tech["cache_count"] == 1
        assert tech["backlog_unsummarized_recent"] == 1
        assert tech["newest_published_at"] == (NOW - timedelta(hours=1)).isoformat()

    def test_stats(self, db):
        assert db.stats() == {"articles": 0, "summaries": 0, "cached_items": 0}


def test_unopenable_path(tmp_path):
    with pytest.raises(PersistenceError):
        Database(tmp_path / "missing-dir" / "x.db")
