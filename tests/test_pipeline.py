"""Job runs through the composition root with injected fakes."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from config import CATEGORY_QUERIES
from conftest import VALID_SUMMARY, FakeGNews, FakeGenerator, failing_extractor, make_article, make_raw
from errors import ErrorKind, TransientCallError
from pipeline import Pipeline


class ScriptedByTitle:
    """Per-title response scripts; titles without a script succeed."""

    model = "fake-model"

    def __init__(self, scripts):
        self.scripts = {title: list(items) for title, items in scripts.items()}
        self.calls: dict[str, int] = {}

    async def complete_json(self, system, user):
        title = user.splitlines()[0].removeprefix("Title: ")
        self.calls[title] = self.calls.get(title, 0) + 1
        script = self.scripts.get(title)
        item = script.pop(0) if script else json.dumps(VALID_SUMMARY)
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    monkeypatch.setattr("agents.summarizer.extract_article_text", failing_extractor)


@pytest.fixture
def fast_config(config):
    config.retry_base_delay = 0.0
    config.retry_max_delay = 0.0
    return config


@pytest.mark.asyncio
async def test_summarize_run_counts(db, fast_config):
    """A times out twice then succeeds, B returns malformed JSON, C succeeds."""
    long_lede = "Officials confirmed the figures in a statement released on Monday morning. " * 2
    db.insert_articles([make_article(i, lede=long_lede) for i in (1, 2, 3)])
    timeout = TransientCallError("Request timed out", kind=ErrorKind.TIMEOUT)
    generator = ScriptedByTitle({
        "Story 1": [timeout, timeout],
        "Story 2": ["{bullets: oops"],
    })
    pipeline = Pipeline(fast_config, db=db, gnews=FakeGNews(), generator=generator)

    stats = await pipeline.run_summarize()

    assert (stats.picked, stats.ok, stats.fail) == (3, 2, 1)
    assert generator.calls == {"Story 1": 3, "Story 2": 1, "Story 3": 1}
    assert db.get_summary(2) is None


@pytest.mark.asyncio
async def test_summarize_batch_size_limit(db, fast_config):
    fast_config.summary_batch_size = 2
    db.insert_articles([make_article(i) for i in range(1, 6)])
    pipeline = Pipeline(fast_config, db=db, gnews=FakeGNews(), generator=FakeGenerator())

    stats = await pipeline.run_summarize()

    assert stats.picked == 2
    assert db.get_summary(1) is not None
    assert db.get_summary(3) is None


@pytest.mark.asyncio
async def test_summarize_skipped_without_credential(db, fast_config):
    fast_config.groq_api_key = ""
    db.insert_articles([make_article(1)])
    pipeline = Pipeline(fast_config, db=db, gnews=FakeGNews())

    stats = await pipeline.run_summarize()

    assert stats.skipped is True
    assert stats.picked == 0


@pytest.mark.asyncio
async def test_run_all(db, fast_config):
    now = datetime.now(timezone.utc)
    items = [make_raw(n, published_at=now - timedelta(minutes=n)) for n in range(1, 4)]
    gnews = FakeGNews({CATEGORY_QUERIES["tech"]: [items]})
    pipeline = Pipeline(fast_config, db=db, gnews=gnews, generator=FakeGenerator())

    ingest, summarize, keeper = await pipeline.run_all()

    assert ingest.inserted == 3
    assert summarize.ok == 3
    assert keeper.ok
    tech = next(c for c in keeper.categories if c.slug == "tech")
    assert tech.cached == 3
    assert tech.used_fallback is True
    page = db.feed_page("tech")
    assert [item.title for item in page.items] == ["Headline 1", "Headline 2", "Headline 3"]
