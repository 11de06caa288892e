from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Index
from sqlalchemy.sql import func

from ...core.database import Base


class NewsArticle(Base):
    """
    Canonical article as stored after enrichment and validation.
    URL is unique; the persistence stage skips URLs that are already stored.
    """
    __tablename__ = "news_articles"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Core article info
    title = Column(String(200), nullable=False)
    url = Column(String(1000), nullable=False, unique=True)
    source = Column(String(100), nullable=False)
    category = Column(String(50), nullable=False, default="general")

    # Content fields
    content = Column(Text, nullable=False)
    summary = Column(Text)
    keywords = Column(JSON)
    processing_error = Column(Text)

    # Timestamps
    published_at = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_news_articles_published_at", "published_at"),
        Index("ix_news_articles_category", "category"),
    )

    @staticmethod
    def _iso(value: datetime):
        return value.isoformat() if value else None

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "url": self.url,
            "source": self.source,
            "category": self.category,
            "content": self.content,
            "summary": self.summary,
            "keywords": self.keywords or [],
            "processing_error": self.processing_error,
            "published_at": self._iso(self.published_at),
            "processed_at": self._iso(self.processed_at),
        }
