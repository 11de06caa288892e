"""Canonical article types shared by every pipeline stage"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from ...exceptions import ArticleValidationError


class Category(str, Enum):
    TECHNOLOGY = "technology"
    BUSINESS = "business"
    HEALTH = "health"
    SPORTS = "sports"
    POLITICS = "politics"
    ENTERTAINMENT = "entertainment"
    GENERAL = "general"


DEFAULT_CATEGORY = Category.GENERAL


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


_url_adapter = TypeAdapter(AnyUrl)


class Article(BaseModel):
    """
    Normalized news item as it flows between pipeline stages.

    Fields are loosely constrained here so that a bad scrape still produces an
    Article; `validate_article` applies the storage rules.
    """
    model_config = ConfigDict(use_enum_values=False)

    title: str = ""
    content: str = ""
    summary: Optional[str] = None
    url: str = ""
    source: str = ""
    category: Category = DEFAULT_CATEGORY
    published_at: datetime = Field(default_factory=utcnow)
    keywords: List[str] = Field(default_factory=list)
    processing_error: Optional[str] = None
    processed_at: Optional[datetime] = None
    raw_data: Dict[str, Any] = Field(default_factory=dict, exclude=True)

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, value):
        # Category never ends up null
        if value is None or value == "":
            return DEFAULT_CATEGORY
        if isinstance(value, str):
            try:
                return Category(value.strip().lower())
            except ValueError:
                return DEFAULT_CATEGORY
        return value

    @property
    def dedupe_key(self) -> str:
        return f"{self.title}-{self.url}"


class ValidatedArticle(BaseModel):
    """Article that satisfies the storage schema"""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=5, max_length=200)
    content: str = Field(..., min_length=50)
    url: str
    category: Category
    published_at: datetime
    source: str = Field(..., min_length=1, max_length=100)
    summary: Optional[str] = Field(default=None, max_length=500)
    keywords: List[str] = Field(default_factory=list)
    processing_error: Optional[str] = None
    processed_at: Optional[datetime] = None

    @field_validator("url")
    @classmethod
    def check_url(cls, value: str) -> str:
        # Stored as scraped, not normalized
        try:
            _url_adapter.validate_python(value)
        except ValidationError as e:
            raise ValueError(e.errors()[0].get("msg", "invalid URL")) from e
        return value

    def to_record(self) -> Dict[str, Any]:
        record = self.model_dump()
        record["category"] = self.category.value
        return record


def validate_article(article: Article) -> ValidatedArticle:
    """Apply the storage schema, raising ArticleValidationError on the first problem."""
    try:
        return ValidatedArticle.model_validate(article.model_dump(exclude={"raw_data"}))
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ArticleValidationError(
            message=f"Article validation failed: {field} {first.get('msg')}",
            details={"title": article.title, "field": field}
        ) from e


class ScrapeSource(BaseModel):
    """A site scraped through a scraping actor. Read once per run, never mutated."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1, max_length=100)
    url: AnyUrl
    actor_id: str = Field(..., min_length=1, validation_alias=AliasChoices("actor_id", "actorId"))
    max_pages: int = Field(default=10, ge=1, le=100, validation_alias=AliasChoices("max_pages", "maxPages"))
    config: Dict[str, Any] = Field(default_factory=dict)
    active: bool = True
