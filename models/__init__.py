"""Pydantic models for the QuickBrew pipeline.

Category:
    Static slug -> id reference data.

GNewsArticle / GNewsPage:
    Raw provider payloads.

NewArticle / Article:
    Normalized article before and after insertion.

SummaryPayload / Summary:
    Validated model output and the persisted five-bullet summary.

CacheEntry, FeedItem, FeedPage, StoryView:
    Ranked cache rows and the joined shapes served to readers.
"""

from models.article import Article, Category, GNewsArticle, GNewsPage, GNewsSource, NewArticle
from models.feed import CacheEntry, FeedItem, FeedPage, StoryView
from models.summary import Summary, SummaryPayload

__all__ = [
    "Article",
    "Category",
    "GNewsArticle",
    "GNewsPage",
    "GNewsSource",
    "NewArticle",
    "CacheEntry",
    "FeedItem",
    "FeedPage",
    "StoryView",
    "Summary",
    "SummaryPayload",
]
