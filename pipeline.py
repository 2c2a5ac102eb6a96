"""Job orchestration for the news cache.

Three independent, re-runnable jobs share one store:

    INGEST:    pull recent provider articles per category (idempotent by URL)
    SUMMARIZE: summarize the newest unsummarized articles across categories
    KEEPER:    top up and rebuild each category's ranked feed cache

Pipeline is the composition root: it builds the store, the provider client
and the generative client from Config and injects them into each job. Each
job run gets its own run id and tracing span. Missing credentials disable
only the job (or step) that needs them.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any

from agents.llm import ChatJSONClient
from agents.summarizer import ArticleSummarizer, JSONGenerator
from config import Config
from database import Database
from gnews import GNewsClient
from ingest import Ingestor, IngestStats
from keeper import Keeper, KeeperStats
from observability.logging import clear_run, start_run
from observability.tracing import setup_tracing, trace_operation

logger = logging.getLogger(__name__)


@dataclass
class SummarizeStats:
    """Result of one summarize run.

    Attributes:
        picked: Unsummarized articles selected
        ok: Summaries generated and stored
        fail: Articles that failed
        skipped: True when no generative credential is configured
    """

    picked: int = 0
    ok: int = 0
    fail: int = 0
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class Pipeline:
    """Builds components from Config and runs the jobs.

    Components may be injected (tests pass fakes); anything not injected is
    created from the configuration.

    Example:
        >>> pipeline = Pipeline(Config.load())
        >>> try:
        ...     await pipeline.run_all()
        ... finally:
        ...     await pipeline.close()
    """

    def __init__(
        self,
        config: Config,
        db: Database | None = None,
        gnews: GNewsClient | None = None,
        generator: JSONGenerator | None = None,
    ):
        self.config = config
        self.db = db or Database(config.db_path)
        self.gnews = gnews or GNewsClient(config)

        if generator is None and config.groq_api_key:
            generator = ChatJSONClient(
                api_key=config.groq_api_key,
                model=config.summary_model,
                base_url=config.groq_base_url,
                timeout=config.generation_timeout,
                max_tokens=config.summary_max_tokens,
            )
        self.generator = generator
        self.summarizer = ArticleSummarizer(self.db, generator, config) if generator else None

        if config.enable_logfire:
            setup_tracing(enabled=True, token=config.logfire_token)

    async def run_ingest(self) -> IngestStats:
        """Ingest all configured categories."""
        start_run("ingest")
        started = time.monotonic()
        try:
            with trace_operation("ingest_run") as attrs:
                stats = await Ingestor(self.db, self.gnews, self.config).run()
                attrs.update(fetched=stats.fetched, inserted=stats.inserted, skipped=len(stats.skipped))
            logger.info("Ingest run done | duration=%.1fs", time.monotonic() - started)
            return stats
        finally:
            clear_run()

    async def run_summarize(self) -> SummarizeStats:
        """Summarize the most recent unsummarized articles across categories."""
        start_run("summarize")
        started = time.monotonic()
        try:
            if self.summarizer is None:
                logger.warning("Summarize skipped | reason=GROQ_API_KEY not set")
                return SummarizeStats(skipped=True)

            with trace_operation("summarize_run") as attrs:
                articles = self.db.unsummarized_articles(
                    limit=self.config.summary_batch_size,
                    scan=self.config.summary_scan,
                )
                logger.info("Summarize run started | picked=%d", len(articles))
                stats = SummarizeStats(picked=len(articles))
                if articles:
                    batch = await self.summarizer.summarize_batch(
                        articles,
                        max_concurrent=self.config.summary_parallel,
                    )
                    stats.ok, stats.fail = batch.ok, batch.fail
                attrs.update(stats.to_dict())

            logger.info(
                "Summarize run done | duration=%.1fs picked=%d ok=%d fail=%d",
                time.monotonic() - started, stats.picked, stats.ok, stats.fail,
            )
            return stats
        finally:
            clear_run()

    async def run_keeper(self) -> KeeperStats:
        """Top up and rebuild every category's feed cache."""
        start_run("keeper")
        started = time.monotonic()
        try:
            with trace_operation("keeper_run") as attrs:
                stats = await Keeper(self.db, self.summarizer, self.config.keeper).run()
                attrs.update(categories=len(stats.categories), aborted=len(stats.aborted))
            logger.info("Keeper run done | duration=%.1fs", time.monotonic() - started)
            return stats
        finally:
            clear_run()

    async def run_all(self) -> tuple[IngestStats, SummarizeStats, KeeperStats]:
        """Ingest, summarize, then rebuild caches."""
        ingest = await self.run_ingest()
        summarize = await self.run_summarize()
        keeper = await self.run_keeper()
        return ingest, summarize, keeper

    async def close(self) -> None:
        """Release network sessions and the store."""
        await self.gnews.close()
        close = getattr(self.generator, "close", None)
        if close is not None:
            await close()
        self.db.close()


async def _run(config: Config, job: str) -> Any:
    pipeline = Pipeline(config)
    try:
        return await getattr(pipeline, f"run_{job}")()
    except asyncio.CancelledError:
        logger.info("Run cancelled | job=%s", job)
        raise
    finally:
        await pipeline.close()


async def run_ingest(config: Config) -> IngestStats:
    return await _run(config, "ingest")


async def run_summarize(config: Config) -> SummarizeStats:
    return await _run(config, "summarize")


async def run_keeper(config: Config) -> KeeperStats:
    return await _run(config, "keeper")


async def run_all(config: Config) -> tuple[IngestStats, SummarizeStats, KeeperStats]:
    return await _run(config, "all")
