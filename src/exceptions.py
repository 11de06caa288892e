from typing import Any, Dict, List, Optional


class NewsAggregatorError(Exception):
    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(NewsAggregatorError):
    pass


class MissingCapabilityError(ConfigurationError):
    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            message=f"Scheduler cannot start, missing capabilities: {', '.join(self.missing)}",
            error_code="MISSING_CAPABILITIES",
            details={"missing": self.missing}
        )


class ArticleValidationError(NewsAggregatorError):
    pass


class ExternalServiceError(NewsAggregatorError):
    pass


class ScrapeError(ExternalServiceError):
    pass


class EnrichmentError(ExternalServiceError):
    pass


class StoreError(ExternalServiceError):
    pass


class CacheError(ExternalServiceError):
    pass


class RetryExhaustedError(NewsAggregatorError):
    def __init__(self, label: str, attempts: int, last_error: BaseException):
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            message=f"{label} failed after {attempts} attempts: {last_error}",
            error_code="RETRY_EXHAUSTED",
            details={"label": label, "attempts": attempts, "last_error": str(last_error)}
        )


class PipelineError(NewsAggregatorError):
    def __init__(self, stage: str, message: str, stats: Optional[Dict[str, Any]] = None):
        self.stage = stage
        super().__init__(
            message=f"Pipeline failed during {stage}: {message}",
            error_code="PIPELINE_FAILED",
            details={"stage": stage, "stats": stats or {}}
        )


class JobNotFoundError(NewsAggregatorError):
    def __init__(self, job_name: str):
        super().__init__(
            message=f"Job {job_name} not found",
            error_code="JOB_NOT_FOUND",
            details={"job_name": job_name}
        )


class ArticleNotFoundError(NewsAggregatorError):
    def __init__(self, article_id: str):
        super().__init__(
            message=f"Article {article_id} not found",
            error_code="ARTICLE_NOT_FOUND",
            details={"article_id": article_id}
        )
