"""Feed cache keeper.

Keeps each category's ranked cache filled with up to min_ready summarized
articles, newest first:

    1. Read ready (summarized) articles within the primary window
    2. If short, summarize a bounded number of recent unsummarized
       articles of the category, then re-read the primary window
    3. If still short, use the fallback window instead
    4. Truncate to min_ready and rewrite the cache with ranks 1..K

Categories are processed one at a time. A failure in one category is logged
and recorded; the remaining categories still run.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from agents.summarizer import ArticleSummarizer
from config import KeeperSettings
from database import Database
from models.article import Category

logger = logging.getLogger(__name__)


@dataclass
class CategoryKeep:
    """What the keeper did for one category.

    Attributes:
        slug: Category slug
        ready_before: Ready articles in the primary window before top-up
        requested: Unsummarized articles picked for top-up
        summarized_ok / summarized_fail: Top-up outcomes
        used_fallback: Whether the fallback window was used
        cached: Number of cache entries written
    """

    slug: str
    ready_before: int = 0
    requested: int = 0
    summarized_ok: int = 0
    summarized_fail: int = 0
    used_fallback: bool = False
    cached: int = 0


@dataclass
class KeeperStats:
    """Result of one keeper run."""

    categories: list[CategoryKeep] = field(default_factory=list)
    aborted: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.aborted

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["ok"] = self.ok
        return d


class Keeper:
    """Rebuilds per-category feed caches.

    Args:
        db: Store
        summarizer: Used for top-up; None skips the top-up step
        settings: Cache targets and windows
        clock: Returns the reference "now" (UTC)
    """

    def __init__(
        self,
        db: Database,
        summarizer: ArticleSummarizer | None,
        settings: KeeperSettings,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.db = db
        self.summarizer = summarizer
        self.settings = settings
        self._clock = clock

    def _ready(self, category_id: int, days: int):
        return self.db.ready_articles(
            category_id,
            days=days,
            limit=self.settings.ready_ceiling,
            now=self._clock(),
        )

    async def ensure_category(self, category: Category) -> CategoryKeep:
        """Top up and rebuild one category's cache.

        Raises:
            PersistenceError: Store read or write failed
        """
        s = self.settings
        result = CategoryKeep(slug=category.slug)

        ready = self._ready(category.id, s.window_days)
        result.ready_before = len(ready)

        if len(ready) < s.min_ready:
            deficit = s.min_ready - len(ready)
            if self.summarizer is None:
                logger.warning("Top-up skipped, no generative credential | category=%s deficit=%d", category.slug, deficit)
            else:
                want = min(s.max_new_summaries, deficit * s.buffer_factor)
                candidates = self.db.unsummarized_articles(
                    limit=want,
                    category_id=category.id,
                    scan=s.unsummarized_scan,
                )
                result.requested = len(candidates)
                logger.info(
                    "Top-up | category=%s deficit=%d summarize=%d",
                    category.slug, deficit, len(candidates),
                )
                if candidates:
                    batch = await self.summarizer.summarize_batch(candidates, max_concurrent=s.parallel)
                    result.summarized_ok = batch.ok
                    result.summarized_fail = batch.fail
                ready = self._ready(category.id, s.window_days)

        if len(ready) < s.min_ready:
            ready = self._ready(category.id, s.fallback_days)
            result.used_fallback = True

        entries = self.db.replace_cache(category.id, [a.id for a in ready[: s.min_ready]])
        result.cached = len(entries)

        logger.info(
            "Cache rebuilt | category=%s ready_before=%d topped_up=%d/%d fallback=%s cached=%d",
            category.slug, result.ready_before, result.summarized_ok, result.requested,
            result.used_fallback, result.cached,
        )
        return result

    async def run(self) -> KeeperStats:
        """Run ensure_category for every category, strictly in sequence.

        Raises:
            PersistenceError: The category list could not be loaded
        """
        stats = KeeperStats()
        categories = self.db.categories()
        logger.info("Keeper started | categories=%d", len(categories))

        for category in categories:
            try:
                stats.categories.append(await self.ensure_category(category))
            except Exception as e:
                logger.error("Keeper category aborted | category=%s error=%s", category.slug, e, exc_info=True)
                stats.aborted[category.slug] = f"{type(e).__name__}: {e}"

        logger.info(
            "Keeper complete | categories=%d aborted=%d cached=%d",
            len(stats.categories), len(stats.aborted), sum(c.cached for c in stats.categories),
        )
        return stats
