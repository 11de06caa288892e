from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query

from ...dependencies import get_news_service
from ....news.schemas.requests import ArticleQuery
from ....news.schemas.responses import ArticleListResponse, ArticleResponse, ArticleStatsResponse
from ....news.services.news_service import NewsService

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("", response_model=ArticleListResponse)
async def list_articles(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Articles per page (max 100)"),
    category: Optional[str] = Query(None, description="Filter by category"),
    source: Optional[str] = Query(None, description="Filter by source name"),
    search: Optional[str] = Query(None, min_length=2, max_length=100, description="Search title and content"),
    date_from: Optional[datetime] = Query(None, description="Published on or after"),
    date_to: Optional[datetime] = Query(None, description="Published on or before"),
    sort_by: str = Query("published_at", pattern="^(title|published_at|category|source)$"),
    sort_direction: str = Query("desc", pattern="^(asc|desc)$"),
    news_service: NewsService = Depends(get_news_service),
):
    """Get stored articles with filters and pagination"""
    query = ArticleQuery(
        page=page,
        limit=limit,
        category=category,
        source=source,
        search=search,
        date_from=date_from,
        date_to=date_to,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    return await news_service.list_articles(query)


@router.get("/stats/summary", response_model=ArticleStatsResponse)
async def get_article_stats(news_service: NewsService = Depends(get_news_service)):
    return await news_service.article_stats()


@router.get("/{article_id}", response_model=ArticleResponse)
async def get_article(article_id: str, news_service: NewsService = Depends(get_news_service)):
    return await news_service.get_article(article_id)
