from fastapi import APIRouter, Depends

from ...dependencies import get_news_service
from ....news.schemas.responses import SourcesResponse
from ....news.services.news_service import NewsService

router = APIRouter()


@router.get("", response_model=SourcesResponse)
async def list_sources(news_service: NewsService = Depends(get_news_service)):
    return await news_service.sources()
