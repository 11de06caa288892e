import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.v1 import api_router
from .config import get_settings
from .core.container import build_container
from .core.log_config import configure_logging
from .exceptions import ArticleNotFoundError, JobNotFoundError, NewsAggregatorError


settings = get_settings()
configure_logging(settings)

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    JobNotFoundError: 404,
    ArticleNotFoundError: 404,
}


def status_code_for(exc: NewsAggregatorError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting News Aggregator API", version="0.1.0", environment=settings.environment)
    try:
        container = build_container(settings)
        logger.info("Services initialized", store=settings.article_store_backend, cache=container.cache.backend)
    except Exception as e:
        logger.error("Failed to initialize services", error=str(e))
        raise

    app.state.container = container
    container.scheduler.start()

    yield

    logger.info("Shutting down News Aggregator API")
    await container.close()


def create_application() -> FastAPI:
    app = FastAPI(
        title="News Aggregator",
        description="Scrapes news sources, enriches articles with LLM summaries and keywords, and serves them",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NewsAggregatorError)
    async def news_aggregator_exception_handler(request: Request, exc: NewsAggregatorError):
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("Request failed", path=request.url.path, method=request.method, **exc.to_dict())
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        logger.error(
            "Unhandled exception occurred",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            }
        )

    # Health check at root
    from .api.v1.endpoints import health
    app.include_router(health.router, tags=["health"])

    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level="info",
        access_log=False,
    )
