"""
LLM-backed enrichment provider: summaries, keywords and categories.
"""

from typing import List, Optional, Sequence

import structlog

from ...exceptions import EnrichmentError
from ...services.llm_service import LLMService
from ..schemas.article import Category, DEFAULT_CATEGORY

logger = structlog.get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You are a professional news summarizer. Create concise, informative summaries "
    "that capture the essence of articles."
)
KEYWORDS_SYSTEM_PROMPT = (
    "You are a keyword extraction expert. Extract only the most relevant and "
    "important keywords from articles."
)
CATEGORY_SYSTEM_PROMPT = (
    "You are a content categorization expert. Categorize articles accurately "
    "based on their main topic."
)


def parse_keyword_list(text: str, max_keywords: int = 10) -> List[str]:
    keywords = [part.strip().lower() for part in text.split(",")]
    return [keyword for keyword in keywords if len(keyword) > 2][:max_keywords]


class LLMEnrichmentProvider:
    def __init__(
        self,
        llm_service: LLMService,
        summary_max_length: int = 200,
        max_keywords: int = 10,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        self.llm_service = llm_service
        self.summary_max_length = summary_max_length
        self.max_keywords = max_keywords
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def summarize(self, text: str) -> str:
        prompt = (
            f"Summarize the following article in {self.summary_max_length} characters or less. "
            f"Focus on the key points and main message:\n\n{text}"
        )
        summary = await self.llm_service.generate_with_fallback(
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        summary = summary.strip()
        if not summary:
            raise EnrichmentError("Summary generation returned empty text")
        logger.debug("Generated summary", original_length=len(text), summary_length=len(summary))
        return summary

    async def extract_keywords(self, text: str) -> List[str]:
        prompt = (
            f"Extract the {self.max_keywords} most important keywords from this article. "
            f"Return only the keywords separated by commas:\n\n{text}"
        )
        response = await self.llm_service.generate_with_fallback(
            system_prompt=KEYWORDS_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.3,
            max_tokens=100,
        )
        keywords = parse_keyword_list(response, self.max_keywords)
        logger.debug("Extracted keywords", count=len(keywords))
        return keywords

    async def classify(self, text: str, categories: Optional[Sequence[str]] = None) -> str:
        allowed = list(categories) if categories else [c.value for c in Category]
        prompt = (
            f"Categorize this article into one of these categories: {', '.join(allowed)}. "
            f"Return only the category name:\n\n{text}"
        )
        response = await self.llm_service.generate_with_fallback(
            system_prompt=CATEGORY_SYSTEM_PROMPT,
            user_prompt=prompt,
            temperature=0.1,
            max_tokens=20,
        )
        category = response.strip().strip(".").lower()
        if category not in allowed:
            logger.debug("Unrecognized category from model", category=category)
            return DEFAULT_CATEGORY.value
        return category
