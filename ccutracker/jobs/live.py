"""Hourly live poll: ranked list → catalog → live counts → one commit."""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.session import create_engine_from_env
from ccutracker.errors import PersistenceFailed, SourceUnavailable
from ccutracker.ingest.models import RankedGame
from ccutracker.ingest.steam import SteamClient
from ccutracker.jobs.side_effects import CelerySideEffects, SideEffects, dispatch_after_commit
from ccutracker.logic.catalog import GameCatalog, placeholder_details
from ccutracker.logic.ranking import RankingCache, build_ranking, order_by_live_count
from ccutracker.logic.timeseries import TimeSeriesStore
from ccutracker.utils.dates import today_in_tz, utc_now

logger = logging.getLogger(__name__)

LIVE_BATCH_SIZE = int(os.environ.get("LIVE_BATCH_SIZE", 10))
PEAK_WINDOW = timedelta(hours=24)


class PollState(str, enum.Enum):
    IDLE = "idle"
    FETCHING_RANK = "fetching_rank"
    REFRESHING_CATALOG = "refreshing_catalog"
    FETCHING_COUNTS = "fetching_counts"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class PollResult:
    state: PollState
    games: int = 0
    new_appids: list[int] = field(default_factory=list)
    live_failures: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is PollState.DONE


class LivePoller:
    def __init__(
        self,
        engine: Engine,
        client: SteamClient,
        catalog: GameCatalog,
        *,
        store: TimeSeriesStore | None = None,
        ranking: RankingCache | None = None,
        side_effects: SideEffects | None = None,
        batch_size: int = LIVE_BATCH_SIZE,
    ) -> None:
        self.engine = engine
        self.client = client
        self.catalog = catalog
        self.store = store or TimeSeriesStore(engine)
        self.ranking = ranking or RankingCache(engine)
        self.side_effects = side_effects
        self.batch_size = batch_size
        self.state = PollState.IDLE

    def _enter(self, state: PollState) -> None:
        logger.debug("Live poll %s -> %s", self.state.value, state.value)
        self.state = state

    async def run(self, *, now: datetime | None = None, today: date | None = None) -> PollResult:
        started = time.monotonic()
        loop = asyncio.get_running_loop()

        self._enter(PollState.FETCHING_RANK)
        try:
            ranked = _dedupe(await self.client.fetch_ranked_list())
        except SourceUnavailable as exc:
            logger.error("Ranked list unavailable, skipping cycle: %s", exc)
            return self._fail(str(exc))
        if not ranked:
            logger.error("Ranked list was empty, keeping previous ranking")
            return self._fail("empty ranked list")

        self._enter(PollState.REFRESHING_CATALOG)
        try:
            new_appids = await self._refresh_catalog(loop, [game.appid for game in ranked])
        except SQLAlchemyError as exc:
            logger.error("Catalog refresh failed: %s", exc)
            return self._fail(str(exc))

        self._enter(PollState.FETCHING_COUNTS)
        live = await self.client.fetch_live_counts([game.appid for game in ranked], batch_size=self.batch_size)
        counts: dict[int, int] = {}
        live_failures = 0
        for game in ranked:
            ccu = live.get(game.appid)
            if ccu is None:
                live_failures += 1
                ccu = game.peak_in_game
            counts[game.appid] = ccu
        if live_failures:
            logger.warning("%s live count(s) unavailable, using rank-list figures", live_failures)

        self._enter(PollState.COMMITTING)
        now = now or utc_now()
        today = today or today_in_tz()
        try:
            await loop.run_in_executor(None, self._commit, ranked, counts, now, today)
        except PersistenceFailed as exc:
            logger.error("Live poll transaction rolled back: %s", exc)
            return self._fail(str(exc), new_appids=new_appids, live_failures=live_failures)

        self._enter(PollState.DONE)
        logger.info(
            "Live poll done in %.0fms: %s games, %s new",
            (time.monotonic() - started) * 1000,
            len(ranked),
            len(new_appids),
        )
        dispatch_after_commit(self.side_effects, new_appids)
        return PollResult(PollState.DONE, games=len(ranked), new_appids=new_appids, live_failures=live_failures)

    async def _refresh_catalog(self, loop: asyncio.AbstractEventLoop, appids: list[int]) -> list[int]:
        missing = await loop.run_in_executor(None, self.catalog.missing, appids)
        for appid in missing:
            details = await self.client.fetch_metadata(appid)
            if details is None:
                logger.warning("No metadata for %s, storing placeholder", appid)
                details = placeholder_details(appid)
            await loop.run_in_executor(None, self.catalog.upsert, details)
        return missing

    def _commit(self, ranked: list[RankedGame], counts: dict[int, int], now: datetime, today: date) -> None:
        try:
            with self.engine.begin() as conn:
                self.store.append_snapshots(conn, counts, now)
                self.store.upsert_peaks(conn, today, counts)
                previous = self.ranking.previous_counts(conn)
                peaks = self.store.peaks_since(conn, counts.keys(), now - PEAK_WINDOW)
                rows = build_ranking(order_by_live_count(ranked, counts), peaks, previous, now)
                self.ranking.replace(conn, rows)
        except SQLAlchemyError as exc:
            raise PersistenceFailed(str(exc)) from exc

    def _fail(self, error: str, **extra) -> PollResult:
        self._enter(PollState.FAILED)
        return PollResult(PollState.FAILED, error=error, **extra)


def _dedupe(ranked: list[RankedGame]) -> list[RankedGame]:
    seen: set[int] = set()
    unique: list[RankedGame] = []
    for game in ranked:
        if game.appid not in seen:
            seen.add(game.appid)
            unique.append(game)
    return unique


async def run_live_poll(
    engine: Engine | None = None,
    *,
    client: SteamClient | None = None,
    side_effects: SideEffects | None = None,
) -> PollResult:
    load_dotenv()
    engine = engine or create_engine_from_env()
    catalog = GameCatalog(engine)
    await asyncio.get_running_loop().run_in_executor(None, catalog.warm)
    client = client or SteamClient()
    poller = LivePoller(
        engine,
        client,
        catalog,
        side_effects=side_effects if side_effects is not None else CelerySideEffects(),
    )
    try:
        return await poller.run()
    finally:
        await client.close()
