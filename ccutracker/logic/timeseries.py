"""Fine-grained CCU snapshots and the per-day peak aggregate."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import date, datetime

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine

from ccutracker.db.tables import ccu_snapshots, daily_peaks
from ccutracker.db.upsert import upsert_daily_peaks
from ccutracker.utils.dates import day_bounds

logger = logging.getLogger(__name__)


class TimeSeriesStore:
    """Writers for ``ccu_snapshots`` and ``daily_peaks``.

    Methods taking a ``conn`` participate in the caller's transaction; the
    others open their own.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def append_snapshots(self, conn: Connection, counts: Mapping[int, int], captured_at: datetime) -> int:
        rows = [{"appid": appid, "captured_at": captured_at, "ccu": ccu} for appid, ccu in counts.items()]
        if rows:
            conn.execute(ccu_snapshots.insert(), rows)
        return len(rows)

    def upsert_peaks(self, conn: Connection, peak_date: date, counts: Mapping[int, int]) -> int:
        return upsert_daily_peaks(
            conn,
            ({"appid": appid, "peak_date": peak_date, "peak_ccu": ccu} for appid, ccu in counts.items()),
        )

    def peaks_since(self, conn: Connection, appids: Iterable[int], since: datetime) -> dict[int, int]:
        """Max snapshot per game captured at or after ``since``."""
        ids = list(appids)
        if not ids:
            return {}
        rows = conn.execute(
            select(ccu_snapshots.c.appid, func.max(ccu_snapshots.c.ccu))
            .where(ccu_snapshots.c.appid.in_(ids), ccu_snapshots.c.captured_at >= since)
            .group_by(ccu_snapshots.c.appid)
        ).all()
        return {appid: peak for appid, peak in rows}

    def record(self, appid: int, ccu: int, captured_at: datetime, peak_date: date) -> None:
        """Append one snapshot and fold it into that day's peak."""
        with self.engine.begin() as conn:
            self.append_snapshots(conn, {appid: ccu}, captured_at)
            self.upsert_peaks(conn, peak_date, {appid: ccu})

    def aggregate_day(self, day: date) -> int:
        """Recompute ``day``'s peaks from its snapshots; returns games touched."""
        start, end = day_bounds(day)
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(ccu_snapshots.c.appid, func.max(ccu_snapshots.c.ccu))
                .where(ccu_snapshots.c.captured_at >= start, ccu_snapshots.c.captured_at < end)
                .group_by(ccu_snapshots.c.appid)
            ).all()
            return upsert_daily_peaks(
                conn, ({"appid": appid, "peak_date": day, "peak_ccu": peak} for appid, peak in rows)
            )

    def prune_snapshots(self, older_than: datetime) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(ccu_snapshots.delete().where(ccu_snapshots.c.captured_at < older_than))
        return result.rowcount

    def daily_peak(self, appid: int, peak_date: date) -> int | None:
        with self.engine.connect() as conn:
            return conn.execute(
                select(daily_peaks.c.peak_ccu).where(
                    daily_peaks.c.appid == appid, daily_peaks.c.peak_date == peak_date
                )
            ).scalar_one_or_none()
