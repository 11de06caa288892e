from functools import lru_cache
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode


def _default_scrape_sources() -> List[Dict[str, Any]]:
    return [
        {
            "name": "TechCrunch",
            "url": "https://techcrunch.com",
            "actor_id": "apify/web-scraper",
            "max_pages": 10,
            "config": {"pageWaitMs": 3000, "maxCrawlingDepth": 2},
        },
        {
            "name": "BBC News",
            "url": "https://www.bbc.com/news",
            "actor_id": "apify/web-scraper",
            "max_pages": 15,
            "config": {"pageWaitMs": 2000, "maxCrawlingDepth": 1},
        },
        {
            "name": "Reuters",
            "url": "https://www.reuters.com",
            "actor_id": "apify/web-scraper",
            "max_pages": 12,
            "config": {"pageWaitMs": 2500, "maxCrawlingDepth": 2},
        },
    ]


class Settings(BaseSettings):

    api_host: str = Field(default="localhost", description="API host")
    api_port: int = Field(default=8000, description="API port")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development, production, test)",
        validation_alias=AliasChoices("ENVIRONMENT", "APP_ENV"),
    )

    allowed_origins: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
        validation_alias=AliasChoices("CORS_ALLOWED_ORIGINS", "ALLOWED_ORIGINS"),
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json or text)")

    # Datastore
    database_url: str = Field(
        default="sqlite:///./news.db",
        description="Database URL",
        examples=["sqlite:///./news.db"]
    )
    article_store_backend: str = Field(default="sql", description="Article store backend: sql or airtable")
    airtable_api_key: Optional[str] = Field(default=None, description="Airtable personal access token")
    airtable_base_id: Optional[str] = Field(default=None, description="Airtable base ID")
    airtable_table_name: str = Field(default="Articles", description="Airtable table holding articles")
    airtable_timeout_seconds: float = Field(default=30.0, description="Timeout for Airtable API calls")

    # Scraping
    apify_api_token: Optional[str] = Field(default=None, description="Apify API token")
    apify_base_url: str = Field(default="https://api.apify.com/v2", description="Apify API base URL")
    apify_poll_interval_seconds: float = Field(default=5.0, description="Interval between actor run status polls")
    apify_run_timeout_seconds: float = Field(default=600.0, description="Maximum wait for an actor run to finish")
    scraping_max_retries: int = Field(default=3, description="Attempts per scrape/enrichment/persistence call")
    scraping_retry_delay_ms: int = Field(default=2000, description="Base retry delay, multiplied by the attempt number")
    scraping_batch_size: int = Field(default=5, description="Articles enriched concurrently per batch")
    enrichment_batch_delay_ms: int = Field(default=1000, description="Pause between enrichment batches")
    persistence_batch_size: int = Field(default=10, description="Records written per store batch")
    enrichment_classify: bool = Field(default=False, description="Let the LLM override the keyword category")
    scrape_sources: List[Dict[str, Any]] = Field(
        default_factory=_default_scrape_sources,
        description="Sources scraped by the daily job (JSON list)",
    )

    # LLM Provider API Keys
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    google_api_key: Optional[str] = Field(default=None, description="Google API key for Gemini")

    # LLM Model Names
    openai_model_name: str = Field(default="gpt-4o-mini", description="OpenAI model name")
    anthropic_model_name: str = Field(default="claude-3-haiku-20240307", description="Anthropic Claude model name")
    google_model_name: str = Field(default="gemini-1.5-flash-latest", description="Google Gemini model name")
    llm_temperature: float = Field(default=0.7, description="LLM temperature for summaries")
    llm_max_tokens: int = Field(default=1000, description="Max tokens for summaries")
    summary_max_length: int = Field(default=200, description="Target summary length in characters")

    # Cache
    redis_url: Optional[str] = Field(default=None, description="Redis URL; in-memory cache when unset")
    cache_key_prefix: str = Field(default="", description="Prefix applied to every cache key")
    cache_ttl_articles: int = Field(default=300, description="TTL for article listings in seconds")
    cache_ttl_categories: int = Field(default=3600, description="TTL for category counts in seconds")
    cache_ttl_analytics: int = Field(default=1800, description="TTL for analytics summaries in seconds")

    # Scheduler
    scheduler_enabled: Optional[str] = Field(default=None, description="Force background jobs on")
    scheduler_disabled: Optional[str] = Field(default=None, description="Force background jobs off")
    scheduler_dedicated_instance: Optional[str] = Field(
        default=None,
        description="Marks this process as the dedicated job runner",
    )
    replica_index: Optional[str] = Field(
        default=None,
        description="Replica index of this process; only replica 0 may run jobs",
        validation_alias=AliasChoices("REPLICA_INDEX", "NODE_APP_INSTANCE"),
    )
    scheduler_timezone: str = Field(default="UTC", description="Timezone for cron schedules")
    cron_daily_scrape: str = Field(default="0 6 * * *", description="Daily scrape schedule")
    cron_cleanup: str = Field(default="0 2 * * 0", description="Old article cleanup schedule")
    cron_cache_cleanup: str = Field(default="0 * * * *", description="Cache cleanup schedule")
    article_retention_days: int = Field(default=90, description="Articles older than this are deleted")

    # Alerts
    alert_webhook_url: Optional[str] = Field(default=None, description="Generic webhook for job failure alerts")
    slack_webhook_url: Optional[str] = Field(default=None, description="Slack incoming webhook for job failure alerts")
    alert_timeout_seconds: float = Field(default=10.0, description="Timeout for alert delivery")

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return value

    @field_validator("environment", mode="before")
    @classmethod
    def normalize_environment(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    class Config:
        env_file = [".env", ".env.local"]  # .env.local takes precedence over .env
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    return Settings()
