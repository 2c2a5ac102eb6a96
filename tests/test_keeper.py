"""Keeper: top-up, fallback window, cache density and per-category isolation."""

import json
from datetime import timedelta

import pytest

from agents.summarizer import ArticleSummarizer
from config import KeeperSettings
from conftest import NOW, VALID_SUMMARY, failing_extractor, make_article, no_sleep
from errors import PersistenceError
from keeper import Keeper
from models.summary import Summary

TECH = 5


class TitleGenerator:
    """Valid summaries, except four-bullet output for the listed titles."""

    model = "fake-model"

    def __init__(self, bad_titles=()):
        self.bad_titles = set(bad_titles)
        self.calls = 0

    async def complete_json(self, system, user):
        self.calls += 1
        title = user.splitlines()[0].removeprefix("Title: ")
        if title in self.bad_titles:
            return json.dumps(dict(VALID_SUMMARY, bullets=VALID_SUMMARY["bullets"][:4]))
        return json.dumps(VALID_SUMMARY)


def seed(db, hours, summarized, category_id=TECH):
    """Insert one article per entry of `hours` (age in hours); id == position + offset."""
    start = db.stats()["articles"]
    db.insert_articles([
        make_article(start + i + 1, category_id=category_id, published_at=NOW - timedelta(hours=h))
        for i, h in enumerate(hours)
    ])
    ids = list(range(start + 1, start + len(hours) + 1))
    if summarized:
        for article_id in ids:
            db.save_summary(Summary(article_id=article_id, model_version="seed", **VALID_SUMMARY))
    return ids


def keeper(db, config, generator=None, settings=None):
    summarizer = None
    if generator is not None:
        summarizer = ArticleSummarizer(db, generator, config, sleep=no_sleep, extractor=failing_extractor)
    return Keeper(db, summarizer, settings or KeeperSettings(), clock=lambda: NOW)


def cached_ids(db, category_id=TECH):
    return [e.article_id for e in db.cache_entries(category_id)]


@pytest.mark.asyncio
async def test_top_up_fills_primary_window(db, config):
    """40 ready, 20 topped up with 18 successes, 58 ready -> ranks 1..50."""
    ready = seed(db, range(1, 41), summarized=True)
    pending = seed(db, range(41, 66), summarized=False)
    generator = TitleGenerator(bad_titles={f"Story {pending[0]}", f"Story {pending[1]}"})

    result = await keeper(db, config, generator).ensure_category(db.categories()[TECH - 1])

    assert result.ready_before == 40
    assert result.requested == 20
    assert result.summarized_ok == 18
    assert result.summarized_fail == 2
    assert result.used_fallback is False
    assert result.cached == 50
    assert generator.calls == 20

    entries = db.cache_entries(TECH)
    assert [e.rank for e in entries] == list(range(1, 51))
    assert cached_ids(db) == ready + pending[2:12]


@pytest.mark.asyncio
async def test_fallback_window_used_when_short(db, config):
    recent = seed(db, [10, 20, 30], summarized=True)
    older = seed(db, [80, 100, 150], summarized=True)
    seed(db, [200], summarized=True)  # beyond the fallback window

    result = await keeper(db, config, TitleGenerator()).ensure_category(db.categories()[TECH - 1])

    assert result.requested == 0
    assert result.used_fallback is True
    assert cached_ids(db) == recent + older


@pytest.mark.asyncio
async def test_no_generator_skips_top_up(db, config):
    seed(db, [1, 2], summarized=True)
    seed(db, [3, 4], summarized=False)

    result = await keeper(db, config, generator=None).ensure_category(db.categories()[TECH - 1])

    assert result.requested == 0
    assert result.cached == 2
    assert db.stats()["summaries"] == 2


@pytest.mark.asyncio
async def test_top_up_capped(db, config):
    seed(db, range(1, 40), summarized=False)
    generator = TitleGenerator()
    settings = KeeperSettings(min_ready=50, max_new_summaries=5)

    result = await keeper(db, config, generator, settings).ensure_category(db.categories()[TECH - 1])

    assert generator.calls == 5
    assert result.cached == 5


@pytest.mark.asyncio
async def test_full_category_needs_no_top_up(db, config):
    seed(db, range(1, 61), summarized=True)
    generator = TitleGenerator()

    result = await keeper(db, config, generator).ensure_category(db.categories()[TECH - 1])

    assert generator.calls == 0
    assert result.cached == 50
    assert cached_ids(db) == list(range(1, 51))


@pytest.mark.asyncio
async def test_rebuild_replaces_previous_cache(db, config):
    seed(db, [1, 2, 3], summarized=True)
    db.replace_cache(TECH, [3, 2, 1, 3])

    await keeper(db, config).ensure_category(db.categories()[TECH - 1])

    assert [(e.rank, e.article_id) for e in db.cache_entries(TECH)] == [(1, 1), (2, 2), (3, 3)]


@pytest.mark.asyncio
async def test_failed_category_does_not_stop_others(db, config, monkeypatch):
    seed(db, [1, 2], summarized=True, category_id=1)
    seed(db, [1, 2], summarized=True, category_id=TECH)
    finance = db.category_id("finance")
    original = db.ready_articles

    def flaky(category_id, *args, **kwargs):
        if category_id == finance:
            raise PersistenceError("ready_articles failed: disk I/O error")
        return original(category_id, *args, **kwargs)

    monkeypatch.setattr(db, "ready_articles", flaky)

    stats = await keeper(db, config).run()

    assert list(stats.aborted) == ["finance"]
    assert stats.ok is False
    assert len(stats.categories) == 5
    assert cached_ids(db, 1) == [1, 2]
    assert cached_ids(db, TECH) == [3, 4]
    assert stats.to_dict()["ok"] is False
