"""RSS/Atom feed fetching."""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone

import feedparser
import httpx

from ccutracker.ingest.models import Feed, FeedEntry
from ccutracker.utils.retry import retry_async

logger = logging.getLogger(__name__)


class FeedClient:
    def __init__(self, *, session: httpx.AsyncClient | None = None) -> None:
        self.session = session or httpx.AsyncClient(
            timeout=10.0,
            follow_redirects=True,
            headers={"User-Agent": "ccutracker/1.0 (news)"},
        )

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_entries(self, feed: Feed) -> list[FeedEntry]:
        """Fetch and parse ``feed``; raises ``httpx.HTTPError`` or ``ValueError``."""
        response = await retry_async(self.session.get)(feed.url)
        response.raise_for_status()
        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise ValueError(f"Unparseable feed {feed.url}: {parsed.bozo_exception}")
        entries: list[FeedEntry] = []
        for item in parsed.entries:
            entries.append(
                FeedEntry(
                    title=(item.get("title") or "").strip(),
                    link=(item.get("link") or "").strip(),
                    summary=(item.get("summary") or item.get("description") or "").strip(),
                    published_at=_published(item),
                )
            )
        return entries


def _published(item) -> datetime | None:
    parsed = item.get("published_parsed") or item.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), timezone.utc)
