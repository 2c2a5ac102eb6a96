"""Network helpers shared by the provider client and the summarizer.

extract_article_text:
    Fetch an article page and extract readable text for summarizer context.
    Handles SSL fallback and boilerplate stripping.

create_ssl_context / USER_AGENT:
    certifi-backed SSL contexts and the browser-like User-Agent sent with
    every outbound request.

Example:
    >>> from tools import extract_article_text
    >>> result = await extract_article_text("https://example.com/article")
    >>> result.success, len(result.content)
"""

from tools.utils import create_ssl_context, USER_AGENT
from tools.fetch import extract_article_text, html_to_text, ExtractedText

__all__ = [
    "extract_article_text",
    "html_to_text",
    "ExtractedText",
    "create_ssl_context",
    "USER_AGENT",
]
