"""Import of long-range daily peaks from the historical source."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta

import pandas as pd
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.upsert import upsert_daily_peaks
from ccutracker.errors import ItemFetchFailed
from ccutracker.ingest.steamcharts import SteamChartsClient
from ccutracker.utils.dates import timezone_name, today_in_tz

logger = logging.getLogger(__name__)

BACKFILL_DAYS = int(os.environ.get("BACKFILL_DAYS", 365))


@dataclass(slots=True)
class BackfillSummary:
    succeeded: int = 0
    failed: int = 0
    rows: int = 0
    failed_ids: list[int] = field(default_factory=list)


def to_daily_peaks(
    series: Sequence[tuple[int, int | None]],
    *,
    today: date,
    days_back: int = BACKFILL_DAYS,
) -> dict[date, int]:
    """Collapse ``[(timestamp_ms, ccu), ...]`` to one maximum per calendar day.

    Missing and non-positive readings are dropped, only the ``days_back``
    days before ``today`` are kept, and ``today`` itself is never returned.
    """
    if not series:
        return {}
    frame = pd.DataFrame(list(series), columns=["ts_ms", "ccu"])
    frame["ccu"] = pd.to_numeric(frame["ccu"], errors="coerce")
    frame = frame[frame["ccu"] > 0]
    if frame.empty:
        return {}
    stamps = pd.to_datetime(frame["ts_ms"], unit="ms", utc=True).dt.tz_convert(timezone_name())
    frame = frame.assign(day=stamps.dt.date)
    cutoff = today - timedelta(days=days_back)
    frame = frame[(frame["day"] >= cutoff) & (frame["day"] < today)]
    if frame.empty:
        return {}
    peaks = frame.groupby("day")["ccu"].max()
    return {day: int(round(value)) for day, value in peaks.items()}


class HistoricalBackfillImporter:
    def __init__(self, engine: Engine, client: SteamChartsClient, *, days_back: int = BACKFILL_DAYS) -> None:
        self.engine = engine
        self.client = client
        self.days_back = days_back

    async def import_game(self, appid: int, *, today: date | None = None) -> int:
        """Backfill one game; returns rows upserted. Raises ``ItemFetchFailed``."""
        series = await self.client.fetch_historical_series(appid)
        peaks = to_daily_peaks(series, today=today or today_in_tz(), days_back=self.days_back)
        if not peaks:
            logger.info("No usable history for %s", appid)
            return 0
        await asyncio.get_running_loop().run_in_executor(None, self._persist, appid, peaks)
        logger.info("Upserted %s daily peaks for %s", len(peaks), appid)
        return len(peaks)

    async def import_many(
        self, appids: Iterable[int], *, today: date | None = None, delay: float = 0.0
    ) -> BackfillSummary:
        summary = BackfillSummary()
        today = today or today_in_tz()
        for appid in appids:
            try:
                summary.rows += await self.import_game(appid, today=today)
                summary.succeeded += 1
            except ItemFetchFailed as exc:
                logger.error("Backfill failed for %s: %s", exc.appid, exc.reason)
                summary.failed += 1
                summary.failed_ids.append(appid)
            except SQLAlchemyError as exc:
                logger.error("Backfill write failed for %s: %s", appid, exc)
                summary.failed += 1
                summary.failed_ids.append(appid)
            except Exception:
                logger.exception("Unexpected backfill error for %s", appid)
                summary.failed += 1
                summary.failed_ids.append(appid)
            if delay:
                await asyncio.sleep(delay)
        logger.info(
            "Backfill complete: %s ok, %s failed, %s daily_peak rows",
            summary.succeeded,
            summary.failed,
            summary.rows,
        )
        return summary

    def _persist(self, appid: int, peaks: dict[date, int]) -> None:
        with self.engine.begin() as conn:
            upsert_daily_peaks(
                conn,
                ({"appid": appid, "peak_date": day, "peak_ccu": ccu} for day, ccu in sorted(peaks.items())),
            )
