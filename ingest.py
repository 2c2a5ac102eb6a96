"""News ingestion: pull recent articles per category into the store.

For each configured category slug:
    1. Read the watermark (newest published_at already stored)
    2. Fetch pages from the provider, newest first, starting at the watermark
    3. Normalize and insert idempotently (duplicates by URL are dropped)
    4. Stop on a short or empty page, or after max_pages

Categories run with bounded parallelism; pages within a category are
sequential. A provider or configuration failure skips only that category; a
provider failure after the first page keeps the counts of the pages stored.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from batch import run_bounded
from config import Config
from database import Database
from errors import ConfigError, ProviderError
from gnews import GNewsClient, normalize

logger = logging.getLogger(__name__)


@dataclass
class CategoryIngest:
    """Per-category ingestion counters."""

    slug: str
    fetched: int = 0
    inserted: int = 0
    pages: int = 0
    error: str | None = None


@dataclass
class IngestStats:
    """Result of one ingestion run.

    Attributes:
        categories: Counters of every category that stored at least its
            first page (a later page failure is kept in `error`)
        skipped: slug -> reason for categories that were skipped
    """

    categories: list[CategoryIngest] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def fetched(self) -> int:
        return sum(c.fetched for c in self.categories)

    @property
    def inserted(self) -> int:
        return sum(c.inserted for c in self.categories)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["fetched"] = self.fetched
        d["inserted"] = self.inserted
        return d


class Ingestor:
    """Fetches provider pages and stores normalized articles."""

    def __init__(self, db: Database, client: GNewsClient, config: Config):
        self.db = db
        self.client = client
        self.config = config

    async def ingest_category(self, slug: str, category_id: int) -> CategoryIngest:
        """Ingest one category.

        Raises:
            ProviderError: The first page request failed
            ConfigError: No provider credential
            PersistenceError: Store read or write failed
        """
        query = self.config.category_queries[slug]
        watermark = self.db.latest_published_at(category_id)
        per_page = self.config.gnews_max_per_page
        result = CategoryIngest(slug=slug)

        logger.info("Ingest category started | category=%s watermark=%s", slug, watermark)

        page = 1
        while page <= self.config.gnews_max_pages:
            try:
                items = (await self.client.fetch_page(query, page, watermark)).articles
            except ProviderError as e:
                if page == 1:
                    raise
                logger.warning(
                    "Ingest category stopped early | category=%s page=%d error=%s", slug, page, e,
                )
                result.error = str(e)
                break
            if not items:
                break

            rows = []
            for raw in items:
                try:
                    rows.append(normalize(raw, category_id))
                except ValueError as e:
                    logger.warning("Skipping malformed item | category=%s url=%s error=%s", slug, raw.url, e)

            inserted = self.db.insert_articles(rows)
            result.pages += 1
            result.fetched += len(items)
            result.inserted += inserted
            logger.debug(
                "Ingest page | category=%s page=%d fetched=%d inserted=%d",
                slug, page, len(items), inserted,
            )

            if len(items) < per_page:
                break
            page += 1

        logger.info(
            "Ingest category complete | category=%s fetched=%d inserted=%d",
            slug, result.fetched, result.inserted,
        )
        return result

    async def run(self) -> IngestStats:
        """Ingest every configured category.

        Raises:
            PersistenceError: The category map could not be loaded
        """
        stats = IngestStats()
        category_ids = self.db.category_map()

        targets: list[tuple[str, int]] = []
        for slug in self.config.category_queries:
            category_id = category_ids.get(slug)
            if category_id is None:
                logger.warning("Category not in store, skipping | category=%s", slug)
                stats.skipped[slug] = "category not found in store"
                continue
            targets.append((slug, category_id))

        async def ingest_one(target: tuple[str, int]) -> CategoryIngest:
            return await self.ingest_category(*target)

        batch = await run_bounded(targets, ingest_one, self.config.ingest_parallel, label="ingest")

        for outcome in batch.outcomes:
            slug = outcome.item[0]
            if outcome.ok:
                stats.categories.append(outcome.value)
            elif isinstance(outcome.error, (ProviderError, ConfigError)):
                logger.warning("Ingest category skipped | category=%s error=%s", slug, outcome.error)
                stats.skipped[slug] = str(outcome.error)
            else:
                logger.error(
                    "Ingest category failed | category=%s error=%s", slug, outcome.error,
                    exc_info=outcome.error,
                )
                stats.skipped[slug] = f"{type(outcome.error).__name__}: {outcome.error}"

        logger.info(
            "Ingest complete | categories=%d skipped=%d fetched=%d inserted=%d",
            len(stats.categories), len(stats.skipped), stats.fetched, stats.inserted,
        )
        return stats
