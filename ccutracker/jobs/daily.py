"""Daily maintenance: end-of-day peak safety net and snapshot retention."""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, timedelta

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.session import create_engine_from_env
from ccutracker.logic.timeseries import TimeSeriesStore
from ccutracker.utils.dates import format_date, today_in_tz, utc_now

logger = logging.getLogger(__name__)

SNAPSHOT_RETENTION_DAYS = int(os.environ.get("SNAPSHOT_RETENTION_DAYS", 30))


class DailySafetyNetAggregator:
    """Fold a day's snapshots into ``daily_peaks``; safe to repeat at any time."""

    def __init__(self, store: TimeSeriesStore) -> None:
        self.store = store

    def run(self, day: date | None = None) -> int | None:
        day = day or today_in_tz()
        logger.info("Running safety-net peak aggregation for %s", format_date(day))
        try:
            touched = self.store.aggregate_day(day)
        except SQLAlchemyError as exc:
            logger.error("Safety-net aggregation failed: %s", exc)
            return None
        logger.info("Safety-net aggregation touched %s games", touched)
        return touched


class RetentionPruner:
    """Delete snapshots past the retention window; peaks and ranking are untouched."""

    def __init__(self, store: TimeSeriesStore, *, retention_days: int = SNAPSHOT_RETENTION_DAYS) -> None:
        self.store = store
        self.retention_days = retention_days

    def run(self, now: datetime | None = None) -> int | None:
        cutoff = (now or utc_now()) - timedelta(days=self.retention_days)
        logger.info("Deleting snapshots older than %s days", self.retention_days)
        try:
            deleted = self.store.prune_snapshots(cutoff)
        except SQLAlchemyError as exc:
            logger.error("Snapshot prune failed: %s", exc)
            return None
        logger.info("Deleted %s snapshot rows", deleted)
        return deleted


def run_daily_peak(engine: Engine | None = None, as_of: date | None = None) -> int | None:
    load_dotenv()
    engine = engine or create_engine_from_env()
    return DailySafetyNetAggregator(TimeSeriesStore(engine)).run(as_of)


def run_prune(engine: Engine | None = None, now: datetime | None = None) -> int | None:
    load_dotenv()
    engine = engine or create_engine_from_env()
    return RetentionPruner(TimeSeriesStore(engine)).run(now)
