from fastapi import APIRouter

from .endpoints import analytics, articles, categories, health, scheduler, scrape, sources

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(articles.router, prefix="/articles", tags=["articles"])
api_router.include_router(categories.router, prefix="/categories", tags=["categories"])
api_router.include_router(sources.router, prefix="/sources", tags=["sources"])
api_router.include_router(analytics.router, prefix="/analytics", tags=["analytics"])

# Pipeline control
api_router.include_router(scrape.router, prefix="/scrape", tags=["scrape"])
api_router.include_router(scheduler.router, prefix="/scheduler", tags=["scheduler"])
