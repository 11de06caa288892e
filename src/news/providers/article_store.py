"""
Article stores: SQLAlchemy (default) and Airtable.
Both expose the same async interface used by the persistence stage,
the cleanup job and the read API.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union
from urllib.parse import quote

import httpx
import structlog
from sqlalchemy import asc, desc, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...exceptions import ConfigurationError, StoreError
from ..models.news_article import NewsArticle
from ..schemas.requests import ArticleQuery

logger = structlog.get_logger(__name__)

Record = Dict[str, Any]
Filters = Union[ArticleQuery, Dict[str, Any], None]

AIRTABLE_BATCH_LIMIT = 10


def to_query(filters: Filters) -> ArticleQuery:
    if isinstance(filters, ArticleQuery):
        return filters
    return ArticleQuery.model_validate(filters or {})


def _as_utc(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def retention_cutoff(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)


def summarize_window(rows: Iterable[Tuple[Any, Any, Any]]) -> Dict[str, Any]:
    """Fold (category, source, published_at) rows into totals and per-day counts"""
    by_category: Counter = Counter()
    by_source: Counter = Counter()
    daily: Counter = Counter()
    for category, source, published_at in rows:
        by_category[category or "general"] += 1
        by_source[source or "unknown"] += 1
        published = _as_utc(published_at)
        if published is not None:
            daily[published.date().isoformat()] += 1
    return {
        "total_articles": sum(by_category.values()),
        "by_category": dict(by_category),
        "by_source": dict(by_source),
        "daily_count": dict(sorted(daily.items())),
    }


class SqlArticleStore:
    """Relational article store. Sync SQLAlchemy work runs in a worker thread."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, fn, *args):
        return await asyncio.to_thread(self._with_session, fn, *args)

    def _with_session(self, fn, *args):
        db: Session = self.session_factory()
        try:
            return fn(db, *args)
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Database operation failed: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _to_model(record: Record) -> NewsArticle:
        return NewsArticle(
            title=record["title"],
            url=record["url"],
            source=record["source"],
            category=record.get("category") or "general",
            content=record["content"],
            summary=record.get("summary"),
            keywords=list(record.get("keywords") or []),
            processing_error=record.get("processing_error"),
            published_at=_as_utc(record.get("published_at")),
            processed_at=_as_utc(record.get("processed_at")),
        )

    def _create_many(self, db: Session, records: Sequence[Record]) -> List[Record]:
        rows = [self._to_model(record) for record in records]
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
        return [row.to_record() for row in rows]

    async def create_batch(self, records: Sequence[Record]) -> List[Record]:
        return await self._run(self._create_many, records)

    async def create_one(self, record: Record) -> Record:
        created = await self._run(self._create_many, [record])
        return created[0]

    def _existing_urls(self, db: Session, urls: List[str]) -> Set[str]:
        rows = db.query(NewsArticle.url).filter(NewsArticle.url.in_(urls)).all()
        return {url for (url,) in rows}

    async def existing_urls(self, urls: Sequence[str]) -> Set[str]:
        if not urls:
            return set()
        return await self._run(self._existing_urls, list(urls))

    def _delete_older_than(self, db: Session, days: int) -> int:
        deleted = (
            db.query(NewsArticle)
            .filter(NewsArticle.published_at < retention_cutoff(days))
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    async def delete_older_than(self, days: int) -> int:
        deleted = await self._run(self._delete_older_than, days)
        logger.info("Deleted old articles", days=days, deleted=deleted)
        return deleted

    def _filtered(self, db: Session, q: ArticleQuery):
        query = db.query(NewsArticle)
        if q.category:
            query = query.filter(NewsArticle.category == q.category.lower())
        if q.source:
            query = query.filter(NewsArticle.source.ilike(f"%{q.source}%"))
        if q.search:
            pattern = f"%{q.search}%"
            query = query.filter(or_(NewsArticle.title.ilike(pattern), NewsArticle.content.ilike(pattern)))
        if q.date_from:
            query = query.filter(NewsArticle.published_at >= _as_utc(q.date_from))
        if q.date_to:
            query = query.filter(NewsArticle.published_at <= _as_utc(q.date_to))
        return query

    def _query(self, db: Session, q: ArticleQuery) -> List[Record]:
        column = getattr(NewsArticle, q.sort_by)
        order = desc(column) if q.sort_direction == "desc" else asc(column)
        rows = self._filtered(db, q).order_by(order, NewsArticle.id).offset(q.offset).limit(q.limit).all()
        return [row.to_record() for row in rows]

    async def query(self, filters: Filters = None) -> List[Record]:
        return await self._run(self._query, to_query(filters))

    async def count(self, filters: Filters = None) -> int:
        return await self._run(lambda db, q: self._filtered(db, q).count(), to_query(filters))

    def _get(self, db: Session, article_id: str) -> Optional[Record]:
        try:
            pk = int(article_id)
        except (TypeError, ValueError):
            return None
        row = db.query(NewsArticle).filter(NewsArticle.id == pk).first()
        return row.to_record() if row else None

    async def get(self, article_id: str) -> Optional[Record]:
        return await self._run(self._get, article_id)

    def _counts_by(self, db: Session, column) -> Dict[str, int]:
        rows = db.query(column, func.count(NewsArticle.id)).group_by(column).all()
        return {key: count for key, count in rows}

    async def category_counts(self) -> Dict[str, int]:
        return await self._run(self._counts_by, NewsArticle.category)

    async def source_counts(self) -> Dict[str, int]:
        return await self._run(self._counts_by, NewsArticle.source)

    def _enrichment_failures(self, db: Session) -> int:
        return db.query(NewsArticle).filter(NewsArticle.processing_error.isnot(None)).count()

    async def enrichment_failures(self) -> int:
        return await self._run(self._enrichment_failures)

    def _analytics(self, db: Session, since: datetime) -> Dict[str, Any]:
        rows = (
            db.query(NewsArticle.category, NewsArticle.source, NewsArticle.published_at)
            .filter(NewsArticle.published_at >= since)
            .all()
        )
        return summarize_window(rows)

    async def analytics(self, since: datetime) -> Dict[str, Any]:
        return await self._run(self._analytics, _as_utc(since))


# Airtable column names for canonical fields
AIRTABLE_FIELDS = {
    "title": "Title",
    "url": "URL",
    "source": "Source",
    "category": "Category",
    "content": "Content",
    "summary": "Summary",
    "keywords": "Keywords",
    "processing_error": "Processing Error",
    "published_at": "Published At",
    "processed_at": "Processed At",
}


def _escape_formula(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


class AirtableArticleStore:
    """Spreadsheet-style store over the Airtable REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_id: Optional[str],
        table_name: str,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key or not base_id or not table_name:
            raise ConfigurationError(
                "Airtable API configuration (api key, base id, table name) is required",
                details={"api_key": bool(api_key), "base_id": bool(base_id), "table_name": bool(table_name)},
            )
        self.api_key = api_key
        self.base_id = base_id
        self.table_name = table_name
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def table_path(self) -> str:
        return f"/{self.base_id}/{quote(self.table_name, safe='')}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="https://api.airtable.com/v0",
            headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def _request(self, client: httpx.AsyncClient, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = await client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(
                f"Airtable request failed with status {e.response.status_code}",
                details={"status_code": e.response.status_code, "body": e.response.text[:500]},
            ) from e
        except httpx.HTTPError as e:
            raise StoreError(f"Airtable request failed: {e}") from e
        return response.json()

    @staticmethod
    def to_fields(record: Record) -> Dict[str, Any]:
        fields = {}
        for key, column in AIRTABLE_FIELDS.items():
            value = record.get(key)
            if value is None:
                continue
            if key == "keywords":
                value = ", ".join(value)
            elif isinstance(value, datetime):
                value = value.isoformat()
            fields[column] = value
        return fields

    @staticmethod
    def from_airtable(item: Dict[str, Any]) -> Record:
        fields = item.get("fields", {})
        record = {key: fields.get(column) for key, column in AIRTABLE_FIELDS.items()}
        keywords = record.get("keywords") or ""
        record["keywords"] = [k.strip() for k in keywords.split(",") if k.strip()]
        record["id"] = item.get("id")
        return record

    async def create_batch(self, records: Sequence[Record]) -> List[Record]:
        if len(records) > AIRTABLE_BATCH_LIMIT:
            raise StoreError(f"Airtable accepts at most {AIRTABLE_BATCH_LIMIT} records per request")
        body = {"records": [{"fields": self.to_fields(r)} for r in records], "typecast": True}
        async with self._client() as client:
            data = await self._request(client, "POST", self.table_path, json=body)
        return [self.from_airtable(item) for item in data.get("records", [])]

    async def create_one(self, record: Record) -> Record:
        async with self._client() as client:
            data = await self._request(
                client, "POST", self.table_path, json={"fields": self.to_fields(record), "typecast": True}
            )
        return self.from_airtable(data)

    async def existing_urls(self, urls: Sequence[str]) -> Set[str]:
        found: Set[str] = set()
        urls = list(urls)
        if not urls:
            return found
        async with self._client() as client:
            for start in range(0, len(urls), AIRTABLE_BATCH_LIMIT):
                chunk = urls[start:start + AIRTABLE_BATCH_LIMIT]
                clauses = ", ".join(f"{{URL}} = '{_escape_formula(url)}'" for url in chunk)
                items = await self._list(client, {
                    "pageSize": 100,
                    "filterByFormula": f"OR({clauses})",
                    "fields[]": AIRTABLE_FIELDS["url"],
                })
                found.update(item.get("fields", {}).get(AIRTABLE_FIELDS["url"]) for item in items)
        found.discard(None)
        return found

    async def _list(self, client: httpx.AsyncClient, params: Dict[str, Any], max_records: Optional[int] = None) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        offset = None
        while True:
            page_params = dict(params)
            if offset:
                page_params["offset"] = offset
            data = await self._request(client, "GET", self.table_path, params=page_params)
            items.extend(data.get("records", []))
            offset = data.get("offset")
            if not offset or (max_records is not None and len(items) >= max_records):
                return items

    def _formula(self, q: ArticleQuery) -> Optional[str]:
        clauses = []
        if q.category:
            clauses.append(f"{{Category}} = '{_escape_formula(q.category.lower())}'")
        if q.source:
            clauses.append(f"FIND(LOWER('{_escape_formula(q.source)}'), LOWER({{Source}}))")
        if q.search:
            term = _escape_formula(q.search.lower())
            clauses.append(f"OR(FIND('{term}', LOWER({{Title}})), FIND('{term}', LOWER({{Content}})))")
        if q.date_from:
            clauses.append(f"IS_AFTER({{Published At}}, '{_as_utc(q.date_from).isoformat()}')")
        if q.date_to:
            clauses.append(f"IS_BEFORE({{Published At}}, '{_as_utc(q.date_to).isoformat()}')")
        if not clauses:
            return None
        return clauses[0] if len(clauses) == 1 else f"AND({', '.join(clauses)})"

    def _list_params(self, q: ArticleQuery) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "pageSize": 100,
            "sort[0][field]": AIRTABLE_FIELDS[q.sort_by],
            "sort[0][direction]": q.sort_direction,
        }
        formula = self._formula(q)
        if formula:
            params["filterByFormula"] = formula
        return params

    async def query(self, filters: Filters = None) -> List[Record]:
        q = to_query(filters)
        async with self._client() as client:
            items = await self._list(client, self._list_params(q), max_records=q.offset + q.limit)
        return [self.from_airtable(item) for item in items[q.offset:q.offset + q.limit]]

    async def count(self, filters: Filters = None) -> int:
        q = to_query(filters)
        params = self._list_params(q)
        params["fields[]"] = AIRTABLE_FIELDS["title"]
        async with self._client() as client:
            return len(await self._list(client, params))

    async def get(self, article_id: str) -> Optional[Record]:
        async with self._client() as client:
            try:
                data = await self._request(client, "GET", f"{self.table_path}/{article_id}")
            except StoreError as e:
                if e.details.get("status_code") == 404:
                    return None
                raise
        return self.from_airtable(data)

    async def delete_older_than(self, days: int) -> int:
        formula = f"IS_BEFORE({{Published At}}, DATEADD(NOW(), -{int(days)}, 'days'))"
        deleted = 0
        async with self._client() as client:
            items = await self._list(client, {"filterByFormula": formula, "pageSize": 100})
            ids = [item["id"] for item in items]
            for start in range(0, len(ids), AIRTABLE_BATCH_LIMIT):
                chunk = ids[start:start + AIRTABLE_BATCH_LIMIT]
                data = await self._request(
                    client, "DELETE", self.table_path, params=[("records[]", record_id) for record_id in chunk]
                )
                deleted += len(data.get("records", []))
        logger.info("Deleted old articles", days=days, deleted=deleted)
        return deleted

    async def _counts_by(self, key: str) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        async with self._client() as client:
            items = await self._list(client, {"pageSize": 100, "fields[]": AIRTABLE_FIELDS[key]})
        for item in items:
            value = item.get("fields", {}).get(AIRTABLE_FIELDS[key]) or "unknown"
            counts[value] = counts.get(value, 0) + 1
        return counts

    async def category_counts(self) -> Dict[str, int]:
        return await self._counts_by("category")

    async def source_counts(self) -> Dict[str, int]:
        return await self._counts_by("source")

    async def enrichment_failures(self) -> int:
        async with self._client() as client:
            items = await self._list(client, {
                "pageSize": 100,
                "filterByFormula": "NOT({Processing Error} = '')",
                "fields[]": AIRTABLE_FIELDS["title"],
            })
        return len(items)

    async def analytics(self, since: datetime) -> Dict[str, Any]:
        columns = [AIRTABLE_FIELDS[key] for key in ("category", "source", "published_at")]
        async with self._client() as client:
            items = await self._list(client, {
                "pageSize": 100,
                "filterByFormula": f"NOT(IS_BEFORE({{Published At}}, '{_as_utc(since).isoformat()}'))",
                "fields[]": columns,
            })
        rows = []
        for item in items:
            fields = item.get("fields", {})
            rows.append(tuple(fields.get(column) for column in columns))
        return summarize_window(rows)
