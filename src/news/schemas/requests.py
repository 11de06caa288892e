"""News API request schemas"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .article import ScrapeSource


SORTABLE_FIELDS = ("title", "published_at", "category", "source")


class ArticleQuery(BaseModel):
    """Filters and paging for article listings"""
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    category: Optional[str] = None
    source: Optional[str] = None
    search: Optional[str] = Field(default=None, min_length=2, max_length=100)
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    sort_by: str = Field(default="published_at", pattern="^(title|published_at|category|source)$")
    sort_direction: str = Field(default="desc", pattern="^(asc|desc)$")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def cache_parts(self) -> List[str]:
        return [
            str(self.page),
            str(self.limit),
            self.category or "all",
            self.source or "all",
            self.search or "none",
            self.date_from.isoformat() if self.date_from else "any",
            self.date_to.isoformat() if self.date_to else "any",
            self.sort_by,
            self.sort_direction,
        ]


class ManualScrapeRequest(BaseModel):
    """Sources for a manual scrape; the configured defaults are used when omitted"""
    sources: Optional[List[ScrapeSource]] = None
