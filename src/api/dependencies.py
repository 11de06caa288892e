from fastapi import Request

from ..core.container import Container
from ..news.services.news_service import NewsService
from ..news.services.pipeline import PipelineOrchestrator
from ..news.tasks.scheduler import Scheduler


def get_container(request: Request) -> Container:
    return request.app.state.container


def get_news_service(request: Request) -> NewsService:
    return get_container(request).news_service


def get_pipeline(request: Request) -> PipelineOrchestrator:
    return get_container(request).pipeline


def get_scheduler(request: Request) -> Scheduler:
    return get_container(request).scheduler
