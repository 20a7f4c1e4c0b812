"""Daily news scrape for currently ranked games."""

from __future__ import annotations

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from ccutracker.db.session import create_engine_from_env
from ccutracker.ingest import load_feeds, load_keywords
from ccutracker.ingest.feeds import FeedClient
from ccutracker.logic.news import NewsRelevanceMatcher, NewsRunSummary


async def run_news(engine: Engine | None = None, *, client: FeedClient | None = None) -> NewsRunSummary:
    load_dotenv()
    engine = engine or create_engine_from_env()
    client = client or FeedClient()
    matcher = NewsRelevanceMatcher(engine, client, load_feeds(), load_keywords())
    try:
        return await matcher.run()
    finally:
        await client.close()
