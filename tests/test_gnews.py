"""Provider payload parsing and normalization."""

from datetime import datetime, timezone

import pytest

from config import Config
from errors import ConfigError
from gnews import GNewsClient, normalize, parse_published_at, source_domain
from models.article import GNewsArticle, GNewsPage


def raw(**overrides) -> GNewsArticle:
    data = {
        "title": "  Chipmaker posts record quarter ",
        "description": "  Revenue beat estimates.  ",
        "content": "Full content body",
        "url": "https://www.example.com/tech/chips",
        "image": "https://cdn.example.com/chip.jpg",
        "publishedAt": "2025-03-10T08:30:00Z",
        "source": {"name": "Example Times", "url": "https://www.example.com"},
    }
    data.update(overrides)
    return GNewsArticle.model_validate(data)


def test_page_parses_provider_aliases():
    page = GNewsPage.model_validate({
        "totalArticles": 1,
        "articles": [raw().model_dump(by_alias=True)],
    })
    assert page.total_articles == 1
    assert page.articles[0].published_at == "2025-03-10T08:30:00Z"


def test_normalize_basic_fields():
    article = normalize(raw(), category_id=3)
    assert article.title == "Chipmaker posts record quarter"
    assert article.lede == "Revenue beat estimates."
    assert article.source_name == "Example Times"
    assert article.source_domain == "example.com"
    assert article.image_url == "https://cdn.example.com/chip.jpg"
    assert article.published_at == datetime(2025, 3, 10, 8, 30, tzinfo=timezone.utc)
    assert article.category_id == 3


def test_normalize_lede_falls_back_to_content():
    assert normalize(raw(description="   ")).lede == "Full content body"


def test_normalize_lede_capped():
    assert len(normalize(raw(description="x" * 2000)).lede) == 800


def test_normalize_missing_title_and_source():
    article = normalize(raw(title=None, source={"name": None}))
    assert article.title == "(no title)"
    assert article.source_name == "example.com"


def test_normalize_empty_image_is_none():
    assert normalize(raw(image="")).image_url is None


def test_normalize_bad_timestamp():
    with pytest.raises(ValueError):
        normalize(raw(publishedAt="yesterday"))


def test_parse_published_at_with_offset():
    dt = parse_published_at("2025-03-10T10:30:00+02:00")
    assert dt == datetime(2025, 3, 10, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("value, micros", [
    ("2025-03-10T08:30:00.5Z", 500000),
    ("2025-03-10T08:30:00.12Z", 120000),
    ("2025-03-10T08:30:00.1234567Z", 123456),
    ("2025-03-10T08:30:00.123+00:00", 123000),
])
def test_parse_published_at_any_fraction_length(value, micros):
    assert parse_published_at(value) == datetime(2025, 3, 10, 8, 30, 0, micros, tzinfo=timezone.utc)

def test_source_domain_strips_www():
    assert source_domain("https://WWW.Reuters.com/x") == "reuters.com"
    assert source_domain("https://apnews.com/article/1") == "apnews.com"


def test_build_params_with_watermark():
    client = GNewsClient(Config(gnews_api_key="k"))
    params = client.build_params("(tech)", 2, datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc))
    assert params["q"] == "(tech)"
    assert params["page"] == "2"
    assert params["max"] == "10"
    assert params["sortby"] == "publishedAt"
    assert params["lang"] == "en"
    assert params["country"] == "us"
    assert params["from"] == "2025-03-01T06:00:00Z"


def test_build_params_without_watermark():
    client = GNewsClient(Config(gnews_api_key="k"))
    assert "from" not in client.build_params("(tech)", 1)


@pytest.mark.asyncio
async def test_fetch_without_key_raises_config_error():
    client = GNewsClient(Config(gnews_api_key=""))
    with pytest.raises(ConfigError):
        await client.fetch_page("(tech)", 1)
    await client.close()
