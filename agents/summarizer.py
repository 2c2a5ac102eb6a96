"""Five-bullet article summarizer.

For each article the summarizer:
    1. Picks context text (lede, extracted page text, or the title)
    2. Asks the generative provider for strict JSON under the retry policy
    3. Parses and validates the JSON against SummaryPayload
    4. Trims and caps fields, then stores one Summary row

Parse and schema failures are terminal for the article: they are raised to
the caller and never retried. Only the provider call itself is retried.
"""

import asyncio
import json
import logging
from typing import Awaitable, Callable, Protocol, Sequence

from pydantic import ValidationError

from batch import BatchResult, run_bounded
from config import Config
from database import Database
from errors import ParseError, SchemaError
from models.article import Article
from models.summary import Summary, SummaryPayload
from retry import RetryPolicy, with_retries
from tools.fetch import ExtractedText, extract_article_text

logger = logging.getLogger(__name__)

# A lede at least this long is used as-is without fetching the page
LEDE_SUFFICIENT_CHARS = 100
LEDE_FALLBACK_CHARS = 1000

SYSTEM_PROMPT = "\n".join([
    "You are a precise news summarizer.",
    "Return STRICT JSON only: no preface, no markdown.",
    "Rules:",
    "- Be extractive; do not invent facts beyond the provided text.",
    "- Use short, information-dense sentences.",
    "- Neutral tone; no sensational words.",
    "- If key information is missing, say so explicitly.",
    "- Output must match the schema exactly.",
])

_SCHEMA_HINT = """Schema:
{
  "bullets": [ "string", "string", "string", "string", "string" ],
  "why_it_matters": "string"
}"""

_INSTRUCTIONS = "\n".join([
    "Produce exactly 5 bullets that capture the key facts.",
    "Add one concise 'why it matters' line explaining impact and context.",
    "No URLs, emojis, or markdown.",
    "Return ONLY valid JSON per the schema.",
])


class JSONGenerator(Protocol):
    """What the summarizer needs from a generative client."""

    model: str

    async def complete_json(self, system: str, user: str) -> str: ...


def build_user_prompt(title: str, source: str, published_at_iso: str, text: str) -> str:
    """Build the per-article user message."""
    header = f"Title: {title}\nSource: {source}\nPublished at: {published_at_iso}"
    body = f"Article text/snippet:\n{text}"
    return "\n".join([header, "", body, "", _INSTRUCTIONS, "", _SCHEMA_HINT])


def parse_summary(raw: str) -> SummaryPayload:
    """Parse and validate raw model output.

    Raises:
        ParseError: Output is not valid JSON
        SchemaError: JSON does not match the summary schema
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ParseError(f"Model output is not valid JSON: {e}") from e
    try:
        payload = SummaryPayload.model_validate(data)
    except ValidationError as e:
        raise SchemaError(f"Model output failed schema validation: {e.error_count()} error(s)") from e
    return payload.normalized()


class ArticleSummarizer:
    """Generates and stores five-bullet summaries.

    Example:
        >>> summarizer = ArticleSummarizer(db, ChatJSONClient(...), config)
        >>> result = await summarizer.summarize_batch(articles, max_concurrent=3)
        >>> result.ok, result.fail
        (11, 1)
    """

    def __init__(
        self,
        db: Database,
        generator: JSONGenerator,
        config: Config,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        extractor: Callable[..., Awaitable[ExtractedText]] | None = None,
    ):
        self.db = db
        self.generator = generator
        self.config = config
        self.policy = policy or RetryPolicy(
            max_attempts=config.retry_max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
        )
        self._sleep = sleep
        self._extract = extractor or extract_article_text

    async def get_context_text(self, article: Article) -> str:
        """Choose the text the model summarizes.

        A lede of 100+ characters wins. Otherwise the page text is extracted
        and capped; if that fails, the lede (capped) or the title is used.
        """
        lede = article.lede.strip()
        if len(lede) >= LEDE_SUFFICIENT_CHARS:
            return lede

        try:
            result = await self._extract(
                article.url,
                timeout=self.config.extract_timeout,
                max_length=self.config.summary_max_input_chars,
            )
        except Exception as e:
            logger.warning("Extraction raised | article_id=%d url=%s error=%s", article.id, article.url, e)
        else:
            if result.success and result.content.strip():
                return result.content.strip()[: self.config.summary_max_input_chars]
            logger.debug("Extraction unavailable | article_id=%d error=%s", article.id, result.error)

        return lede[:LEDE_FALLBACK_CHARS] or article.title

    async def generate(self, article: Article) -> SummaryPayload:
        """Produce a validated summary payload without persisting it.

        Raises:
            UpstreamCallError: Generation failed after retries
            ParseError / SchemaError: Output unusable
        """
        text = await self.get_context_text(article)
        prompt = build_user_prompt(
            title=article.title,
            source=article.source_name,
            published_at_iso=article.published_at.isoformat(),
            text=text,
        )
        raw = await with_retries(
            lambda: self.generator.complete_json(SYSTEM_PROMPT, prompt),
            self.policy,
            sleep=self._sleep,
            label=f"summarize:{article.id}",
        )
        return parse_summary(raw)

    async def summarize(self, article: Article) -> Summary:
        """Generate and store the summary for one article.

        A summary already stored for the article (e.g. written by a concurrent
        run) is not an error; the new one is discarded.
        """
        payload = await self.generate(article)
        summary = Summary(
            article_id=article.id,
            bullets=payload.bullets,
            why_it_matters=payload.why_it_matters,
            model_version=self.generator.model,
            quality_score=0.0,
        )
        if self.db.save_summary(summary):
            logger.debug("Summarized | article_id=%d title=%s", article.id, article.title[:50])
        else:
            logger.info("Already summarized | article_id=%d", article.id)
        return summary

    async def summarize_batch(
        self,
        articles: Sequence[Article],
        max_concurrent: int = 3,
    ) -> BatchResult[Article, Summary]:
        """Summarize articles with bounded parallelism.

        Returns:
            BatchResult with one outcome per article, in input order
        """
        total = len(articles)
        logger.info("Batch summarization started | total=%d max_concurrent=%d", total, max_concurrent)

        result = await run_bounded(articles, self.summarize, max_concurrent, label="summarize")

        for outcome in result.failures:
            logger.error(
                "Summarize failed | article_id=%d error_type=%s error=%s",
                outcome.item.id, type(outcome.error).__name__, outcome.error,
            )
        logger.info("Batch summarization complete | total=%d ok=%d fail=%d", total, result.ok, result.fail)
        return result
