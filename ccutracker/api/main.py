"""FastAPI application serving the tracker's read-only views."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from datetime import date
from functools import lru_cache
from typing import Any

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.engine import Engine

from ccutracker.db.session import create_engine_from_env
from ccutracker.ingest.models import GameDetails, UpcomingGame
from ccutracker.ingest.steam import SteamClient
from ccutracker.logic import queries
from ccutracker.logic.catalog import GameCatalog
from ccutracker.utils.cache import SingleFlightCache
from ccutracker.utils.dates import today_in_tz, utc_now

logger = logging.getLogger(__name__)

UPCOMING_TTL_SECONDS = 24 * 60 * 60
UPCOMING_KEY = "upcoming"

app = FastAPI(title="CCU Tracker API")

upcoming_cache = SingleFlightCache()


class GameResponse(BaseModel):
    appid: int
    name: str
    header_image: str | None = None
    release_date: date | None = None
    current_ccu: int | None = None
    peak_24h: int | None = None


class UpcomingGameResponse(BaseModel):
    rank: int
    appid: int
    name: str
    header_image: str | None = None


class UpcomingResponse(BaseModel):
    data: list[UpcomingGameResponse]
    count: int


@lru_cache
def get_engine() -> Engine:
    return create_engine_from_env()


@lru_cache
def _catalog_for(engine: Engine) -> GameCatalog:
    return GameCatalog(engine)


def get_catalog(engine: Engine = Depends(get_engine)) -> GameCatalog:
    return _catalog_for(engine)


async def load_upcoming() -> list[UpcomingGame]:
    client = SteamClient()
    try:
        return await client.fetch_upcoming_ranked_list()
    finally:
        await client.close()


def get_upcoming_loader() -> Callable[[], Awaitable[list[UpcomingGame]]]:
    return load_upcoming


async def fetch_game_metadata(appid: int) -> GameDetails | None:
    client = SteamClient()
    try:
        return await client.fetch_metadata(appid)
    finally:
        await client.close()


def get_metadata_fetcher() -> Callable[[int], Awaitable[GameDetails | None]]:
    return fetch_game_metadata


@app.get("/health")
def health() -> dict[str, Any]:
    return {"status": "ok", "time": utc_now()}


@app.get("/api/live")
def live(engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    rows = queries.live_ranking(engine)
    last_updated_at = rows[0]["last_updated_at"] if rows else None
    return {"data": rows, "count": len(rows), "last_updated_at": last_updated_at}


@app.get("/api/leaderboard")
def leaderboard(view: str = "live", engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    try:
        rows = queries.leaderboard(engine, view, today_in_tz())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"view": view, "data": rows, "count": len(rows)}


@app.get("/api/history/{appid}")
def history(appid: int, range_: str = Query("day", alias="range"), engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    try:
        return queries.history(engine, appid, range_, now=utc_now(), today=today_in_tz())
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/games/{appid}", response_model=GameResponse)
async def game(
    appid: int,
    engine: Engine = Depends(get_engine),
    catalog: GameCatalog = Depends(get_catalog),
    fetch_metadata: Callable[[int], Awaitable[GameDetails | None]] = Depends(get_metadata_fetcher),
) -> GameResponse:
    entry = await catalog.lookup(appid, fetch_metadata)
    if entry is None:
        raise HTTPException(status_code=404, detail="Game not found")
    loop = asyncio.get_running_loop()
    ranking = await loop.run_in_executor(None, queries.ranking_entry, engine, appid) or {}
    return GameResponse(
        appid=entry.appid,
        name=entry.name,
        header_image=entry.header_image,
        release_date=entry.release_date,
        current_ccu=ranking.get("current_ccu"),
        peak_24h=ranking.get("peak_24h"),
    )


@app.get("/api/movers")
def movers(engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    return queries.movers(engine)


@app.get("/api/records")
def records(engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    rows = queries.recent_records(engine)
    return {"data": rows, "count": len(rows)}


@app.get("/api/news")
def news(limit: int = 50, engine: Engine = Depends(get_engine)) -> dict[str, Any]:
    rows = queries.recent_news(engine, limit=min(max(limit, 1), 100))
    return {"data": rows, "count": len(rows)}


@app.get("/api/upcoming", response_model=UpcomingResponse)
async def upcoming(
    loader: Callable[[], Awaitable[list[UpcomingGame]]] = Depends(get_upcoming_loader),
) -> UpcomingResponse:
    try:
        games = await upcoming_cache.get(UPCOMING_KEY, loader, UPCOMING_TTL_SECONDS)
    except (httpx.HTTPError, ValueError) as exc:
        raise HTTPException(status_code=503, detail="Upcoming list unavailable") from exc
    return UpcomingResponse(
        data=[UpcomingGameResponse(**asdict(game)) for game in games],
        count=len(games),
    )
