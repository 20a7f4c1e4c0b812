"""Matching of feed entries to currently ranked games."""

from __future__ import annotations

import html
import logging
import os
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.tables import games, leaderboard_cache, news_articles
from ccutracker.db.upsert import insert_or_ignore
from ccutracker.ingest.feeds import FeedClient
from ccutracker.ingest.models import Feed, FeedEntry
from ccutracker.utils.dates import utc_now

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 4
SNIPPET_LENGTH = 500
NEWS_RETENTION_DAYS = int(os.environ.get("NEWS_RETENTION_DAYS", 30))

TAG_RE = re.compile(r"<[^>]+>")
SPACE_RE = re.compile(r"\s+")


@dataclass(slots=True)
class MatchedArticle:
    appid: int
    title: str
    url: str
    source_name: str
    snippet: str | None
    published_at: datetime | None


@dataclass(slots=True)
class NewsRunSummary:
    inserted: int = 0
    feeds_failed: int = 0
    pruned: int = 0


def build_name_index(names: Iterable[tuple[int, str]], *, min_length: int = MIN_NAME_LENGTH) -> list[tuple[str, int]]:
    """Lower-cased ``(name, appid)`` pairs, longest name first."""
    index: dict[str, int] = {}
    for appid, name in names:
        if name and len(name) >= min_length:
            index.setdefault(name.lower(), appid)
    return sorted(index.items(), key=lambda pair: len(pair[0]), reverse=True)


def plain_text(value: str) -> str:
    return SPACE_RE.sub(" ", html.unescape(TAG_RE.sub(" ", value))).strip()


def match_entry(
    entry: FeedEntry, name_index: Sequence[tuple[str, int]], keywords: Sequence[str]
) -> int | None:
    """Appid of the most specific ranked game the entry mentions, if it is also on-topic."""
    title = entry.title.strip()
    if not title or not entry.link:
        return None
    text = f"{title} {plain_text(entry.summary)}".lower()
    if not any(keyword in text for keyword in keywords):
        return None
    for name, appid in name_index:
        if name in text:
            return appid
    return None


def match_entries(
    feed: Feed,
    entries: Iterable[FeedEntry],
    name_index: Sequence[tuple[str, int]],
    keywords: Sequence[str],
) -> list[MatchedArticle]:
    matched: list[MatchedArticle] = []
    for entry in entries:
        appid = match_entry(entry, name_index, keywords)
        if appid is None:
            continue
        snippet = plain_text(entry.summary)[:SNIPPET_LENGTH] or None
        matched.append(
            MatchedArticle(
                appid=appid,
                title=entry.title.strip(),
                url=entry.link,
                source_name=feed.name,
                snippet=snippet,
                published_at=entry.published_at,
            )
        )
    return matched


class NewsRelevanceMatcher:
    def __init__(
        self,
        engine: Engine,
        client: FeedClient,
        feeds: Sequence[Feed],
        keywords: Sequence[str],
        *,
        retention_days: int = NEWS_RETENTION_DAYS,
    ) -> None:
        self.engine = engine
        self.client = client
        self.feeds = list(feeds)
        self.keywords = [keyword.lower() for keyword in keywords]
        self.retention_days = retention_days

    def ranked_names(self) -> list[tuple[int, str]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(leaderboard_cache.c.appid, games.c.name).join(
                    games, games.c.appid == leaderboard_cache.c.appid
                )
            ).all()
        return [(appid, name) for appid, name in rows]

    async def run(self, *, now: datetime | None = None) -> NewsRunSummary:
        summary = NewsRunSummary()
        name_index = build_name_index(self.ranked_names())
        if not name_index:
            logger.warning("Leaderboard is empty, skipping news scrape")
            return summary

        scraped_at = now or utc_now()
        for feed in self.feeds:
            try:
                entries = await self.client.fetch_entries(feed)
            except Exception as exc:
                logger.warning("Failed to fetch %s: %s", feed.name, exc)
                summary.feeds_failed += 1
                continue
            articles = match_entries(feed, entries, name_index, self.keywords)
            try:
                summary.inserted += self.store(articles, scraped_at)
            except SQLAlchemyError as exc:
                logger.error("Storing articles from %s failed: %s", feed.name, exc)
                summary.feeds_failed += 1

        summary.pruned = self.prune(scraped_at - timedelta(days=self.retention_days))
        logger.info(
            "News done: %s new article(s), %s feed(s) failed, %s pruned",
            summary.inserted,
            summary.feeds_failed,
            summary.pruned,
        )
        return summary

    def store(self, articles: Iterable[MatchedArticle], scraped_at: datetime) -> int:
        inserted = 0
        with self.engine.begin() as conn:
            for article in articles:
                inserted += insert_or_ignore(
                    conn,
                    news_articles,
                    {
                        "appid": article.appid,
                        "title": article.title,
                        "url": article.url,
                        "source_name": article.source_name,
                        "snippet": article.snippet,
                        "published_at": article.published_at,
                        "scraped_at": scraped_at,
                    },
                    index_elements=[news_articles.c.url],
                )
        return inserted

    def prune(self, older_than: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(news_articles.delete().where(news_articles.c.scraped_at < older_than))
        return result.rowcount
