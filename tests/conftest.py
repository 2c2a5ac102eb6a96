"""Shared fixtures: temporary stores, fake provider and generative clients."""

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import CATEGORY_NAMES, Config, KeeperSettings  # noqa: E402
from database import Database  # noqa: E402
from errors import ProviderError  # noqa: E402
from models.article import GNewsArticle, GNewsPage, GNewsSource, NewArticle  # noqa: E402
from tools.fetch import ExtractedText  # noqa: E402

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)

VALID_SUMMARY = {
    "bullets": [
        "The central bank held rates steady.",
        "Inflation cooled to 2.4 percent.",
        "Markets rallied after the decision.",
        "Two members dissented in favour of a cut.",
        "The next meeting is in six weeks.",
    ],
    "why_it_matters": "Borrowing costs stay high for households and firms for now.",
}


def make_article(
    n: int,
    category_id: int | None = 1,
    published_at: datetime | None = None,
    lede: str = "",
) -> NewArticle:
    return NewArticle(
        url=f"https://news.example.com/story-{n}",
        title=f"Story {n}",
        lede=lede,
        source_name="Example News",
        source_domain="news.example.com",
        published_at=published_at or NOW - timedelta(hours=n),
        category_id=category_id,
    )


def make_raw(n: int, published_at: datetime | None = None) -> GNewsArticle:
    ts = (published_at or NOW - timedelta(minutes=n)).strftime("%Y-%m-%dT%H:%M:%SZ")
    return GNewsArticle(
        title=f"Headline {n}",
        description=f"Description of headline {n}",
        content="",
        url=f"https://www.wire.example.org/a/{n}",
        published_at=ts,
        source=GNewsSource(name="Wire", url="https://wire.example.org"),
    )


@pytest.fixture
def db(tmp_path):
    store = Database(tmp_path / "test.db")
    store.seed_categories(CATEGORY_NAMES)
    yield store
    store.close()


@pytest.fixture
def config(tmp_path):
    return Config(
        gnews_api_key="gnews-test",
        groq_api_key="groq-test",
        db_path=tmp_path / "test.db",
        log_dir=tmp_path / "log",
        keeper=KeeperSettings(),
    )


class FakeGNews:
    """Serves canned pages per (query, page).

    Raises for every page of queries in `failing`, and from the given page
    onward for queries in `failing_from`.
    """

    def __init__(
        self,
        pages: dict[str, list[list[GNewsArticle]]] | None = None,
        failing: set[str] | None = None,
        failing_from: dict[str, int] | None = None,
    ):
        self.pages = pages or {}
        self.failing = failing or set()
        self.failing_from = failing_from or {}
        self.calls: list[tuple[str, int, datetime | None]] = []

    async def fetch_page(self, query, page, watermark=None):
        self.calls.append((query, page, watermark))
        if query in self.failing or page >= self.failing_from.get(query, page + 1):
            raise ProviderError("GNews HTTP 503: unavailable", status=503)
        pages = self.pages.get(query, [])
        items = pages[page - 1] if page <= len(pages) else []
        return GNewsPage(total_articles=len(items), articles=items)

    async def close(self):
        pass


class FakeGenerator:
    """Returns scripted responses in order; exceptions in the script are raised."""

    model = "fake-model"

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = json.dumps(VALID_SUMMARY) if default is None else default
        self.calls = 0
        self.prompts: list[str] = []

    async def complete_json(self, system, user):
        self.calls += 1
        self.prompts.append(user)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item


async def no_sleep(_delay):
    return None


async def failing_extractor(url, timeout=15, max_length=8000):
    return ExtractedText(url=url, content="", success=False, error="HTTP 403")


@pytest.fixture
def generator():
    return FakeGenerator()
