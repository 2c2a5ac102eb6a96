"""Article and category records.

Three shapes of the same news item flow through the pipeline:

    GNewsArticle: raw item exactly as the provider returns it
    NewArticle:   normalized row ready for idempotent insert (no id yet)
    Article:      persisted row read back from the store

Deduplication Strategy:
    Articles are unique by URL across the whole store. A provider item whose
    URL is already stored is dropped at insert time; it never updates the
    existing row.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Category(BaseModel):
    """Static category reference data (slug -> id)."""

    id: int
    slug: str
    name: str = ""


class GNewsSource(BaseModel):
    """Publisher block of a GNews item."""

    name: str | None = None
    url: str | None = None


class GNewsArticle(BaseModel):
    """A raw item from the GNews search endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    title: str | None = None
    description: str | None = None
    content: str | None = None
    url: str
    image: str | None = None
    published_at: str = Field(alias="publishedAt")
    source: GNewsSource = Field(default_factory=GNewsSource)


class GNewsPage(BaseModel):
    """One page of GNews search results."""

    model_config = ConfigDict(populate_by_name=True)

    total_articles: int = Field(default=0, alias="totalArticles")
    articles: list[GNewsArticle] = Field(default_factory=list)


class NewArticle(BaseModel):
    """A normalized article ready to be inserted.

    Attributes:
        url: Canonical article URL (globally unique in the store)
        title: Headline, never empty
        lede: Description or content snippet, at most 800 characters
        source_name: Publisher name (falls back to the domain)
        source_domain: URL host without a leading 'www.'
        image_url: Lead image, if any
        published_at: Publication timestamp (UTC)
        category_id: Owning category
    """

    url: str
    title: str
    lede: str = ""
    source_name: str
    source_domain: str
    image_url: str | None = None
    published_at: datetime
    category_id: int | None = None


class Article(NewArticle):
    """A persisted article."""

    id: int

    def __str__(self) -> str:
        return f"Article({self.id}, '{self.title[:50]}')"
