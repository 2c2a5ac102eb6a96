"""Async GNews search client and article normalization.

This module fetches one page at a time from the GNews search endpoint and
converts provider items into NewArticle rows for idempotent insertion.

Features:
    - Shared aiohttp session with certifi-backed SSL
    - Fixed per-request timeout
    - Watermark support (`from` parameter) to skip already-stored content

Error Handling Strategy:
    - Missing API key raises ConfigError before any request is made
    - Non-200 responses, network errors and timeouts raise ProviderError
    - Failures are not retried here; the next scheduled run picks up from
      the persisted watermark
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlparse

import aiohttp
from pydantic import ValidationError

from config import Config
from errors import ConfigError, ProviderError
from models.article import GNewsArticle, GNewsPage, NewArticle
from tools.utils import USER_AGENT, create_ssl_context

logger = logging.getLogger(__name__)

GNEWS_SEARCH_URL = "https://gnews.io/api/v4/search"

LEDE_MAX_CHARS = 800
TITLE_PLACEHOLDER = "(no title)"

_FRACTION_RE = re.compile(r"(?<=\d{2}:\d{2}:\d{2})\.(\d+)")


def _iso_z(dt: datetime) -> str:
    """Format a datetime as the UTC 'YYYY-MM-DDTHH:MM:SSZ' form GNews expects."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_published_at(value: str) -> datetime:
    """Parse a provider timestamp into an aware UTC datetime.

    Raises:
        ValueError: If the value is not an ISO-8601 timestamp
    """
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 accepts only 3 or 6 fractional digits
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def source_domain(url: str) -> str:
    """Return the URL host without a leading 'www.'."""
    host = (urlparse(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def normalize(raw: GNewsArticle, category_id: int | None = None) -> NewArticle:
    """Convert a provider item into an insertable article.

    - lede prefers the description, falls back to content, capped at 800 chars
    - title defaults to a placeholder when missing
    - source_name falls back to the domain

    Args:
        raw: Provider item
        category_id: Owning category

    Returns:
        NewArticle

    Raises:
        ValueError: If the publication timestamp cannot be parsed
    """
    domain = source_domain(raw.url)
    lede = ((raw.description or "").strip() or (raw.content or "").strip())[:LEDE_MAX_CHARS]
    return NewArticle(
        url=raw.url,
        title=(raw.title or "").strip() or TITLE_PLACEHOLDER,
        lede=lede,
        source_name=(raw.source.name or "").strip() or domain,
        source_domain=domain,
        image_url=raw.image or None,
        published_at=parse_published_at(raw.published_at),
        category_id=category_id,
    )


class GNewsClient:
    """Fetches search result pages from GNews.

    The client owns one aiohttp session; use it as an async context manager
    or call close() when done.

    Example:
        >>> async with GNewsClient(config) as client:
        ...     page = await client.fetch_page("(technology OR AI)", page=1)
        ...     len(page.articles)
        10
    """

    def __init__(self, config: Config):
        self.api_key = config.gnews_api_key
        self.lang = config.gnews_lang
        self.country = config.gnews_country
        self.per_page = config.gnews_max_per_page
        self.timeout = config.gnews_timeout
        self._session: aiohttp.ClientSession | None = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(ssl=create_ssl_context()),
                headers={"User-Agent": USER_AGENT},
            )
        return self._session

    def build_params(self, query: str, page: int, watermark: datetime | None = None) -> dict[str, str]:
        """Build query parameters for one search page."""
        params = {
            "q": query,
            "apikey": self.api_key,
            "max": str(self.per_page),
            "sortby": "publishedAt",
            "page": str(page),
        }
        if self.lang:
            params["lang"] = self.lang
        if self.country:
            params["country"] = self.country
        if watermark is not None:
            params["from"] = _iso_z(watermark)
        return params

    async def fetch_page(
        self,
        query: str,
        page: int,
        watermark: datetime | None = None,
    ) -> GNewsPage:
        """Fetch one page of search results sorted by publish time.

        Args:
            query: Boolean search query
            page: 1-based page number
            watermark: Only return items published at or after this time

        Returns:
            GNewsPage (possibly empty)

        Raises:
            ConfigError: GNEWS_API_KEY is not set
            ProviderError: Network failure, timeout, non-200 status or bad payload
        """
        if not self.configured:
            raise ConfigError("GNEWS_API_KEY is not set")

        params = self.build_params(query, page, watermark)
        session = self._get_session()
        try:
            async with session.get(
                GNEWS_SEARCH_URL,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                if resp.status != 200:
                    body = (await resp.text())[:200]
                    raise ProviderError(f"GNews HTTP {resp.status}: {body}", status=resp.status)
                payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"GNews request timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ProviderError(f"GNews request failed: {type(e).__name__}: {e}") from e

        try:
            result = GNewsPage.model_validate(payload or {})
        except ValidationError as e:
            raise ProviderError(f"GNews returned an unexpected payload: {e}") from e
        logger.debug("GNews page fetched | page=%d items=%d", page, len(result.articles))
        return result

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> "GNewsClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
