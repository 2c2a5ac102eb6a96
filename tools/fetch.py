"""Best-effort full-text extraction for summarizer context.

When an article's lede is too short to summarize, the summarizer fetches the
article page and extracts readable text from it.

Features:
    - SSL fallback for problematic certificates
    - Boilerplate-aware HTML-to-text conversion (skips scripts, nav, footers)
    - Prefers <article> content when the page has one
    - Never raises: failures come back as an unsuccessful ExtractedText
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from html.parser import HTMLParser
from io import StringIO

import aiohttp

from tools.utils import USER_AGENT, create_ssl_context

logger = logging.getLogger(__name__)


class _ArticleTextParser(HTMLParser):
    """Collect visible text, keeping <article> content separately.

    Content inside SKIP_TAGS is ignored. Block-level closing tags insert a
    line break so paragraphs do not run together.
    """

    SKIP_TAGS = frozenset({
        "script", "style", "head", "noscript", "template", "svg",
        "nav", "footer", "aside", "form", "iframe",
    })
    BLOCK_TAGS = frozenset({"p", "div", "section", "li", "h1", "h2", "h3", "h4", "br", "article"})

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self._page = StringIO()
        self._article = StringIO()
        self._skip_depth = 0
        self._article_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self.SKIP_TAGS:
            self._skip_depth += 1
        elif tag == "article":
            self._article_depth += 1

    def handle_endtag(self, tag):
        if tag in self.SKIP_TAGS:
            if self._skip_depth > 0:
                self._skip_depth -= 1
            return
        if tag in self.BLOCK_TAGS:
            self._write("\n")
        if tag == "article" and self._article_depth > 0:
            self._article_depth -= 1

    def handle_data(self, data):
        if self._skip_depth == 0:
            self._write(data)

    def _write(self, text: str) -> None:
        self._page.write(text)
        if self._article_depth > 0:
            self._article.write(text)

    def text(self) -> str:
        """Return <article> text when present, else the whole page text."""
        article = self._article.getvalue()
        return article if article.strip() else self._page.getvalue()


def html_to_text(html: str) -> str:
    """Extract readable text from HTML with normalized whitespace."""
    parser = _ArticleTextParser()
    try:
        parser.feed(html)
        parser.close()
        text = parser.text()
    except Exception:
        # Malformed markup: strip tags with a regex instead
        text = re.sub(r"<[^>]+>", " ", html)

    lines = (re.sub(r"[ \t\r\f\v]+", " ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


@dataclass
class ExtractedText:
    """Result of a full-text extraction attempt."""

    url: str
    content: str
    success: bool
    error: str | None = None


async def extract_article_text(
    url: str,
    timeout: int = 15,
    max_length: int = 8000,
) -> ExtractedText:
    """Fetch an article page and extract its text.

    Args:
        url: Article URL
        timeout: Request timeout in seconds
        max_length: Max characters of text returned

    Returns:
        ExtractedText with content, or success=False with an error message
    """
    logger.debug("Extracting article text: %s", url)

    async def fetch(session: aiohttp.ClientSession, verify: bool) -> str:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"User-Agent": USER_AGENT, "Accept-Encoding": "gzip, deflate"},
            ssl=create_ssl_context(verify),
        ) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(resp.request_info, resp.history, status=resp.status)
            return await resp.text(errors="replace")

    try:
        async with aiohttp.ClientSession() as session:
            try:
                html = await fetch(session, verify=True)
            except aiohttp.ClientSSLError:
                logger.debug("SSL error, retrying without verification: %s", url)
                html = await fetch(session, verify=False)
    except aiohttp.ClientResponseError as e:
        return ExtractedText(url=url, content="", success=False, error=f"HTTP {e.status}")
    except asyncio.TimeoutError:
        return ExtractedText(url=url, content="", success=False, error=f"timed out after {timeout}s")
    except (aiohttp.ClientError, UnicodeDecodeError, ValueError) as e:
        return ExtractedText(url=url, content="", success=False, error=f"{type(e).__name__}: {e}")

    content = html_to_text(html)[:max_length]
    if not content:
        return ExtractedText(url=url, content="", success=False, error="empty page text")
    return ExtractedText(url=url, content=content, success=True)
