"""Generative agents for the QuickBrew pipeline.

ChatJSONClient:
    OpenAI-compatible chat client (Groq by default) in JSON-object mode.
    Tags upstream failures with an ErrorKind for the retry primitive.

ArticleSummarizer:
    Turns an article into a validated five-bullet summary and stores it.

Example:
    >>> from agents import ArticleSummarizer, ChatJSONClient
    >>> client = ChatJSONClient(api_key=config.groq_api_key, model=config.summary_model)
    >>> summarizer = ArticleSummarizer(db, client, config)
"""

from agents.llm import ChatJSONClient
from agents.summarizer import ArticleSummarizer

__all__ = [
    "ChatJSONClient",
    "ArticleSummarizer",
]
