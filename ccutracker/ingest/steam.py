"""Steam Web API and store clients."""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Any

import httpx

from ccutracker.errors import SourceUnavailable
from ccutracker.ingest.models import GameDetails, RankedGame, UpcomingGame
from ccutracker.utils.dates import parse_release_date
from ccutracker.utils.retry import retry_async

logger = logging.getLogger(__name__)

MOST_PLAYED_URL = "https://api.steampowered.com/ISteamChartsService/GetMostPlayedGames/v1/"
CURRENT_PLAYERS_URL = "https://api.steampowered.com/ISteamUserStats/GetNumberOfCurrentPlayers/v1/"
APP_DETAILS_URL = "https://store.steampowered.com/api/appdetails"
WISHLIST_SEARCH_URL = "https://store.steampowered.com/search/results/"
HEADER_IMAGE_URL = "https://shared.akamai.steamstatic.com/store_item_assets/steam/apps/{appid}/header.jpg"

RANK_LIMIT = int(os.environ.get("RANK_LIMIT", 100))
HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", 10.0))

APP_ID_IN_URL_RE = re.compile(r"/apps/(\d+)/")


class SteamClient:
    def __init__(self, api_key: str | None = None, *, session: httpx.AsyncClient | None = None) -> None:
        self.api_key = api_key if api_key is not None else os.environ.get("STEAM_API_KEY")
        self.session = session or httpx.AsyncClient(
            timeout=HTTP_TIMEOUT, headers={"User-Agent": "ccutracker/1.0"}
        )

    async def close(self) -> None:
        await self.session.aclose()

    async def fetch_ranked_list(self, limit: int = RANK_LIMIT) -> list[RankedGame]:
        """Return the current most-played list, ranked.

        Raises :class:`SourceUnavailable` on transport errors, non-2xx
        responses or an unexpected payload; callers must not write anything
        in that case.
        """
        params: dict[str, Any] = {"format": "json"}
        if self.api_key:
            params["key"] = self.api_key
        try:
            response = await retry_async(self.session.get)(MOST_PLAYED_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceUnavailable(f"GetMostPlayedGames failed: {exc}") from exc

        ranks = (payload.get("response") or {}).get("ranks") if isinstance(payload, dict) else None
        if not isinstance(ranks, list):
            raise SourceUnavailable("Unexpected GetMostPlayedGames response shape")
        try:
            ranked = [
                RankedGame(
                    rank=int(entry["rank"]),
                    appid=int(entry["appid"]),
                    peak_in_game=int(entry.get("peak_in_game") or 0),
                )
                for entry in ranks
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise SourceUnavailable(f"Malformed rank entry: {exc}") from exc
        ranked.sort(key=lambda game: game.rank)
        return ranked[:limit]

    async def fetch_live_count(self, appid: int) -> int | None:
        """Current players for ``appid``; ``None`` when unavailable."""
        params = {"appid": appid}
        try:
            response = await retry_async(self.session.get)(CURRENT_PLAYERS_URL, params=params)
            response.raise_for_status()
            data = response.json().get("response") or {}
        except (httpx.HTTPError, OSError, ValueError, AttributeError) as exc:
            logger.warning("Live count failed for %s: %s", appid, exc)
            return None
        if data.get("result") != 1 or data.get("player_count") is None:
            return None
        try:
            return int(data["player_count"])
        except (TypeError, ValueError):
            return None

    async def fetch_live_counts(self, appids: list[int], *, batch_size: int = 10) -> dict[int, int | None]:
        """Fetch counts in parallel batches of ``batch_size``."""
        counts: dict[int, int | None] = {}
        for start in range(0, len(appids), batch_size):
            batch = appids[start:start + batch_size]
            results = await asyncio.gather(*(self.fetch_live_count(appid) for appid in batch))
            counts.update(zip(batch, results))
        return counts

    async def fetch_metadata(self, appid: int) -> GameDetails | None:
        params = {"appids": appid, "filters": "basic,release_date"}
        try:
            response = await retry_async(self.session.get)(APP_DETAILS_URL, params=params)
            if response.status_code != 200:
                return None
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("appdetails(%s) failed: %s", appid, exc)
            return None
        entry = payload.get(str(appid)) if isinstance(payload, dict) else None
        data = (entry or {}).get("data")
        if not entry or not entry.get("success") or not isinstance(data, dict):
            return None
        release = data.get("release_date") or {}
        return GameDetails(
            appid=appid,
            name=data.get("name") or f"App {appid}",
            header_image=data.get("header_image"),
            release_date=parse_release_date(release.get("date")),
            coming_soon=bool(release.get("coming_soon", False)),
        )

    async def fetch_upcoming_ranked_list(self, limit: int = 50) -> list[UpcomingGame]:
        """Most-wishlisted unreleased games, in store order."""
        params = {"filter": "popularwishlist", "json": 1, "count": limit}
        response = await retry_async(self.session.get)(WISHLIST_SEARCH_URL, params=params)
        response.raise_for_status()
        items = response.json().get("items") or []
        upcoming: list[UpcomingGame] = []
        for item in items:
            match = APP_ID_IN_URL_RE.search(item.get("logo") or "")
            if not match:
                continue
            appid = int(match.group(1))
            upcoming.append(
                UpcomingGame(
                    rank=len(upcoming) + 1,
                    appid=appid,
                    name=item.get("name") or f"App {appid}",
                    header_image=HEADER_IMAGE_URL.format(appid=appid),
                )
            )
        return upcoming[:limit]
