"""
Article Normalizer
Maps loosely-typed scrape records onto the canonical Article shape,
assigns a keyword-based category and naive keywords, and drops duplicates.
"""

import re
from collections import Counter
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from ..schemas.article import Article, Category, DEFAULT_CATEGORY, ScrapeSource, utcnow

logger = structlog.get_logger(__name__)


# Canonical field -> raw keys, first non-empty value wins
FIELD_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("title", ("title", "headline")),
    ("content", ("content", "description")),
    ("url", ("url", "link")),
    ("published_at", ("publishedAt", "published_at", "date")),
)

# Checked in order; first category with a matching term wins
CATEGORY_LEXICON: Tuple[Tuple[Category, Tuple[str, ...]], ...] = (
    (Category.TECHNOLOGY, ("tech", "ai", "software", "digital", "computer")),
    (Category.BUSINESS, ("business", "finance", "economy", "market", "company")),
    (Category.HEALTH, ("health", "medical", "doctor", "hospital", "treatment")),
    (Category.SPORTS, ("sports", "game", "team", "player", "match")),
    (Category.POLITICS, ("politics", "government", "election", "policy", "law")),
)

MAX_NAIVE_KEYWORDS = 10
_TOKEN_RE = re.compile(r"\b\w{4,}\b")
_WHITESPACE_RE = re.compile(r"\s+")

_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d",
    "%d-%m-%Y",
    "%d/%m/%Y",
)


def pick_field(raw: Mapping[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(value)).strip()


def parse_published_at(value: Any) -> Optional[datetime]:
    """Parse a scraped date; None when the value is missing or unparseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        parsed = None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
        if parsed is None:
            try:
                parsed = parsedate_to_datetime(text)
            except (TypeError, ValueError):
                pass
        if parsed is None:
            for fmt in _DATE_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
        if parsed is None:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def categorize(title: str, content: str) -> Category:
    text = f"{title} {content}".lower()
    for category, terms in CATEGORY_LEXICON:
        if any(term in text for term in terms):
            return category
    return DEFAULT_CATEGORY


def extract_keywords(title: str, content: str, limit: int = MAX_NAIVE_KEYWORDS) -> List[str]:
    """Most frequent tokens of four or more characters, ties in first-seen order."""
    words = _TOKEN_RE.findall(f"{title} {content}".lower())
    # Counter keeps insertion order, and sorted() is stable
    frequency = Counter(words)
    ranked = sorted(frequency.items(), key=lambda item: item[1], reverse=True)
    return [word for word, _ in ranked[:limit]]


class ArticleNormalizer:
    """Turns raw actor dataset items into canonical Articles"""

    def __init__(self, field_rules: Iterable[Tuple[str, Tuple[str, ...]]] = FIELD_RULES):
        self.field_rules = tuple(field_rules)

    def normalize(self, raw_items: Iterable[Mapping[str, Any]], source: ScrapeSource) -> List[Article]:
        articles = []
        for raw in raw_items:
            if not isinstance(raw, Mapping):
                logger.warning("Skipping non-object scrape item", source=source.name, item_type=type(raw).__name__)
                continue
            articles.append(self.normalize_item(raw, source.name))
        return articles

    def normalize_item(self, raw: Mapping[str, Any], source_name: str) -> Article:
        mapped: Dict[str, Any] = {
            field: pick_field(raw, keys) for field, keys in self.field_rules
        }

        title = clean_text(mapped.get("title"))
        content = str(mapped.get("content") or "").strip()
        url = clean_text(mapped.get("url"))
        published_at = parse_published_at(mapped.get("published_at")) or utcnow()

        return Article(
            title=title,
            content=content,
            url=url,
            source=source_name,
            category=categorize(title, content),
            published_at=published_at,
            keywords=extract_keywords(title, content),
            raw_data=dict(raw),
        )


def deduplicate(articles: Iterable[Article]) -> List[Article]:
    """Keep the first article per (title, url) identity, preserving input order."""
    seen = set()
    unique = []
    for article in articles:
        key = article.dedupe_key
        if key in seen:
            continue
        seen.add(key)
        unique.append(article)
    return unique
