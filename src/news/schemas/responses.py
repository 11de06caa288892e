"""News API response schemas"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Articles
# ============================================================================

class ArticleResponse(BaseModel):
    """Stored article as returned by the read API"""
    id: str
    title: str
    url: str
    source: str
    category: str
    content: str
    summary: Optional[str] = None
    keywords: List[str] = []
    processing_error: Optional[str] = None
    published_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_next: bool
    has_prev: bool


class ArticleListResponse(BaseModel):
    articles: List[ArticleResponse]
    pagination: PaginationMeta


# ============================================================================
# Aggregates
# ============================================================================

class CategoryCount(BaseModel):
    name: str
    count: int


class CategoriesResponse(BaseModel):
    categories: List[CategoryCount]
    total: int


class SourceCount(BaseModel):
    name: str
    count: int


class SourcesResponse(BaseModel):
    sources: List[SourceCount]
    total: int


class ArticleStatsResponse(BaseModel):
    """Last seven days at a glance"""
    total_articles: int
    categories_count: int
    sources_count: int
    today_count: int


class AnalyticsSummaryResponse(BaseModel):
    total_articles: int
    by_category: Dict[str, int]
    by_source: Dict[str, int]
    enrichment_failures: int
    generated_at: datetime


class AnalyticsOverviewResponse(BaseModel):
    timeframe: str
    since: datetime
    total_articles: int
    by_category: Dict[str, int]
    by_source: Dict[str, int]
    daily_count: Dict[str, int] = Field(default_factory=dict, description="ISO date to article count")
    generated_at: datetime


class TrendItem(BaseModel):
    category: str
    count: int
    percentage: float


class TrendsResponse(BaseModel):
    timeframe: str
    trends: List[TrendItem]


class DailyCount(BaseModel):
    date: str
    count: int


class DailyCountsResponse(BaseModel):
    days: int
    daily: List[DailyCount]


# ============================================================================
# Pipeline and scheduler
# ============================================================================

class PipelineRunResponse(BaseModel):
    """Statistics for one pipeline run"""
    scraped: int = 0
    processed: int = 0
    saved: int = 0
    skipped: int = Field(default=0, description="Already stored, not rewritten")
    invalid: int = 0
    failed: int = 0
    enrichment_failures: int = 0
    duration: int = Field(default=0, description="Wall time in milliseconds")
    stage: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None


class ManualScrapeResponse(BaseModel):
    status: str
    message: str
    sources: List[str]


class ScrapeStatusResponse(BaseModel):
    is_running: bool
    active_runs: int = 0
    stage: str
    last_run: Optional[PipelineRunResponse] = None
    next_scheduled: Optional[datetime] = None


class JobStatus(BaseModel):
    schedule: str
    description: str
    next_run: Optional[datetime] = None


class SchedulerStatusResponse(BaseModel):
    enabled: bool
    running: bool
    environment: str
    timezone: str
    jobs: Dict[str, JobStatus]
    alerts: Dict[str, bool]


class JobRunResponse(BaseModel):
    job: str
    run_id: str
    status: str
    duration_ms: int
    result: Optional[Any] = None
    error: Optional[str] = None
    started_at: datetime
