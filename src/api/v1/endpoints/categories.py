from fastapi import APIRouter, Depends

from ...dependencies import get_news_service
from ....news.schemas.responses import CategoriesResponse
from ....news.services.news_service import NewsService

router = APIRouter()


@router.get("", response_model=CategoriesResponse)
async def get_categories(news_service: NewsService = Depends(get_news_service)):
    """Article counts per category"""
    return await news_service.categories()
