from fastapi import APIRouter, Depends, Query

from ...dependencies import get_news_service
from ....news.schemas.responses import (
    AnalyticsOverviewResponse,
    AnalyticsSummaryResponse,
    DailyCountsResponse,
    TrendsResponse,
)
from ....news.services.news_service import NewsService

router = APIRouter()


@router.get("/summary", response_model=AnalyticsSummaryResponse)
async def get_analytics_summary(news_service: NewsService = Depends(get_news_service)):
    return await news_service.analytics_summary()


@router.get("/overview", response_model=AnalyticsOverviewResponse)
async def get_analytics_overview(
    timeframe: str = Query("7d", pattern="^(1d|7d|30d|90d)$"),
    news_service: NewsService = Depends(get_news_service),
):
    return await news_service.analytics_overview(timeframe)


@router.get("/trends", response_model=TrendsResponse)
async def get_trends(
    timeframe: str = Query("7d", pattern="^(1d|7d|30d)$"),
    limit: int = Query(10, ge=1, le=50),
    news_service: NewsService = Depends(get_news_service),
):
    """Category share of recent articles"""
    return await news_service.trends(timeframe, limit)


@router.get("/daily", response_model=DailyCountsResponse)
async def get_daily_counts(
    days: int = Query(30, ge=1, le=90),
    news_service: NewsService = Depends(get_news_service),
):
    return await news_service.daily_counts(days)
