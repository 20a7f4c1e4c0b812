"""Extended poll: keep daily peaks current for catalog games outside the live top-N."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.session import create_engine_from_env
from ccutracker.db.tables import games, leaderboard_cache
from ccutracker.ingest.steam import SteamClient
from ccutracker.logic.timeseries import TimeSeriesStore
from ccutracker.utils.dates import local_date, utc_now

logger = logging.getLogger(__name__)

EXTENDED_DELAY_SECONDS = float(os.environ.get("EXTENDED_DELAY_SECONDS", 0.5))


@dataclass(slots=True)
class ExtendedSummary:
    updated: int = 0
    failed: int = 0


class ExtendedCoveragePoller:
    def __init__(
        self,
        engine: Engine,
        client: SteamClient,
        *,
        store: TimeSeriesStore | None = None,
        delay: float = EXTENDED_DELAY_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.engine = engine
        self.client = client
        self.store = store or TimeSeriesStore(engine)
        self.delay = delay
        self.clock = clock

    def unranked_appids(self) -> list[int]:
        query = (
            select(games.c.appid)
            .where(games.c.appid.not_in(select(leaderboard_cache.c.appid)))
            .order_by(games.c.appid)
        )
        with self.engine.connect() as conn:
            return list(conn.execute(query).scalars())

    async def run(self, *, today: date | None = None) -> ExtendedSummary:
        """Poll each unranked game in turn.

        Without ``today`` every reading is filed under its own local day, so a
        run that crosses midnight splits its peaks across both days.
        """
        started = time.monotonic()
        summary = ExtendedSummary()
        loop = asyncio.get_running_loop()
        appids = await loop.run_in_executor(None, self.unranked_appids)
        if not appids:
            logger.info("No extended games to poll")
            return summary

        logger.info("Polling %s extended games", len(appids))
        for index, appid in enumerate(appids):
            if index and self.delay:
                await asyncio.sleep(self.delay)
            ccu = await self.client.fetch_live_count(appid)
            if ccu is None:
                summary.failed += 1
                continue
            captured_at = self.clock()
            day = today or local_date(captured_at)
            try:
                await loop.run_in_executor(None, self.store.record, appid, ccu, captured_at, day)
            except SQLAlchemyError as exc:
                logger.warning("Extended write failed for %s: %s", appid, exc)
                summary.failed += 1
                continue
            summary.updated += 1

        logger.info(
            "Extended poll done in %.0fms: %s updated, %s failed",
            (time.monotonic() - started) * 1000,
            summary.updated,
            summary.failed,
        )
        return summary


async def run_extended_poll(engine: Engine | None = None, *, client: SteamClient | None = None) -> ExtendedSummary:
    load_dotenv()
    engine = engine or create_engine_from_env()
    client = client or SteamClient()
    try:
        return await ExtendedCoveragePoller(engine, client).run()
    finally:
        await client.close()
