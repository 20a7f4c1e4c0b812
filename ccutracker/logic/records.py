"""Detection of games beating their own trailing-window peak."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine

from ccutracker.db.tables import daily_peaks, leaderboard_cache, peak_records
from ccutracker.db.upsert import insert_or_ignore
from ccutracker.utils.dates import today_in_tz, utc_now

logger = logging.getLogger(__name__)

RECORD_WINDOWS = tuple(
    int(days) for days in os.environ.get("RECORD_WINDOWS", "7,30,90").split(",") if days.strip()
)


@dataclass(slots=True)
class RecordEvent:
    appid: int
    window_days: int
    ccu: int
    record_date: date


def prior_window_max(conn: Connection, appid: int, window_days: int, today: date) -> int | None:
    """Highest daily peak in ``[today - window_days, today)``; today's row is excluded."""
    return conn.execute(
        select(func.max(daily_peaks.c.peak_ccu)).where(
            daily_peaks.c.appid == appid,
            daily_peaks.c.peak_date >= today - timedelta(days=window_days),
            daily_peaks.c.peak_date < today,
        )
    ).scalar()


def record_exists(conn: Connection, appid: int, window_days: int, record_date: date) -> bool:
    return (
        conn.execute(
            select(peak_records.c.id).where(
                peak_records.c.appid == appid,
                peak_records.c.window_days == window_days,
                peak_records.c.record_date == record_date,
            )
        ).first()
        is not None
    )


class RecordDetector:
    def __init__(self, engine: Engine, *, windows: tuple[int, ...] = RECORD_WINDOWS) -> None:
        self.engine = engine
        self.windows = windows

    def run(self, *, today: date | None = None, now: datetime | None = None) -> list[RecordEvent]:
        """Check every ranked game against each window and log new records."""
        today = today or today_in_tz()
        now = now or utc_now()
        created: list[RecordEvent] = []
        with self.engine.begin() as conn:
            ranked = conn.execute(select(leaderboard_cache.c.appid, leaderboard_cache.c.current_ccu)).all()
            for appid, current in ranked:
                for window in self.windows:
                    event = self._check(conn, appid, current, window, today, now)
                    if event:
                        created.append(event)
        if created:
            logger.info("Logged %s new peak record(s)", len(created))
        return created

    def _check(self, conn: Connection, appid: int, current: int, window: int, today: date, now: datetime):
        previous_max = prior_window_max(conn, appid, window, today)
        if previous_max is None or current <= previous_max:
            return None
        if record_exists(conn, appid, window, today):
            return None
        inserted = insert_or_ignore(
            conn,
            peak_records,
            {
                "appid": appid,
                "window_days": window,
                "ccu": current,
                "record_date": today,
                "record_at": now,
            },
            index_elements=[peak_records.c.appid, peak_records.c.window_days, peak_records.c.record_date],
        )
        if not inserted:
            return None
        logger.info("Record: %s hit %s (previous %sd max %s)", appid, current, window, previous_max)
        return RecordEvent(appid=appid, window_days=window, ccu=current, record_date=today)
