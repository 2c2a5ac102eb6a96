"""Cache and read-side models.

CacheEntry is the ranked pointer row the keeper rewrites. FeedItem, FeedPage
and StoryView are the joined Article + Summary shapes handed to the read layer.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class CacheEntry(BaseModel):
    """One ranked slot of a category's cache (rank 1 = newest)."""

    category_id: int
    article_id: int
    rank: int = Field(ge=1)


class FeedItem(BaseModel):
    """A cached article joined with its summary."""

    id: int
    title: str
    source: str
    image_url: str | None = None
    published_at: datetime
    bullets: list[str]
    why_it_matters: str
    url: str


class FeedPage(BaseModel):
    """A rank window of a category feed.

    Attributes:
        items: Items in rank order
        next_cursor: Rank to request next, or None when the feed is exhausted
    """

    items: list[FeedItem] = Field(default_factory=list)
    next_cursor: int | None = None


class StoryView(FeedItem):
    """Single-story lookup result."""

    like_count: int = 0
