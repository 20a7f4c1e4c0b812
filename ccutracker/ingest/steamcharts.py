"""SteamCharts client: long-range history and top-list discovery."""

from __future__ import annotations

import logging
import re

import httpx

from ccutracker.errors import ItemFetchFailed
from ccutracker.utils.rate_limit import RateLimiter
from ccutracker.utils.retry import retry_async

logger = logging.getLogger(__name__)

STEAMCHARTS_BASE = "https://steamcharts.com"
APP_LINK_RE = re.compile(r'href="/app/(\d+)"')


class SteamChartsClient:
    def __init__(
        self,
        *,
        session: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self.session = session or httpx.AsyncClient(
            timeout=30.0, headers={"User-Agent": "ccutracker/1.0 (backfill)"}
        )
        self._rate_limiter = rate_limiter or RateLimiter(rate=0.5)

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_historical_series(self, appid: int) -> list[tuple[int, int | None]]:
        """Return ``[(timestamp_ms, ccu), ...]`` for ``appid``.

        Raises :class:`ItemFetchFailed` on any transport or shape error.
        """
        url = f"{STEAMCHARTS_BASE}/app/{appid}/chart-data.json"
        try:
            response = await self._get(url)
            response.raise_for_status()
            raw = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ItemFetchFailed(appid, str(exc)) from exc
        if not isinstance(raw, list):
            raise ItemFetchFailed(appid, "unexpected chart-data shape")
        series: list[tuple[int, int | None]] = []
        for point in raw:
            if not isinstance(point, (list, tuple)) or len(point) < 2:
                continue
            timestamp = _as_int(point[0])
            if timestamp is None:
                continue
            series.append((timestamp, _as_int(point[1])))
        return series

    async def fetch_top_appids(self, pages: int = 5) -> list[int]:
        """Collect app ids linked from the top pages, in first-seen order."""
        seen: dict[int, None] = {}
        for page in range(1, pages + 1):
            url = f"{STEAMCHARTS_BASE}/top" if page == 1 else f"{STEAMCHARTS_BASE}/top/p.{page}"
            try:
                response = await self._get(url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Top page %s failed: %s", page, exc)
                continue
            for match in APP_LINK_RE.finditer(response.text):
                seen.setdefault(int(match.group(1)), None)
            logger.info("Top page %s scraped, %s unique app ids so far", page, len(seen))
        return list(seen)

    async def _get(self, url: str) -> httpx.Response:
        await self._rate_limiter.wait(url)
        return await retry_async(self.session.get)(url)


def _as_int(value) -> int | None:
    """Integer value of a chart point field; ``None`` for missing or non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None
