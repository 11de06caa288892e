"""
News Module
===========

Aggregation pipeline and its read side:
- Scraping through Apify actors
- Normalization and cross-source deduplication
- LLM enrichment (summaries, keywords, optional category)
- Validated persistence to SQL or Airtable
- Cache invalidation and scheduled background jobs
"""
