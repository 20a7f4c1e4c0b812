"""Read-only projections over the aggregated state."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, select, true
from sqlalchemy.engine import Engine

from ccutracker.db.tables import ccu_snapshots, daily_peaks, games, leaderboard_cache, news_articles, peak_records

LEADERBOARD_VIEWS = {"live": None, "today": 1, "7d": 7, "30d": 30, "90d": 90, "180d": 180, "365d": 365}
HISTORY_RANGES = ("day", "week", "month")
MOVERS_LIMIT = 10


def live_ranking(engine: Engine) -> list[dict[str, Any]]:
    query = (
        select(
            leaderboard_cache.c.rank,
            leaderboard_cache.c.appid,
            leaderboard_cache.c.current_ccu.label("ccu"),
            leaderboard_cache.c.peak_24h,
            leaderboard_cache.c.prev_ccu,
            leaderboard_cache.c.last_updated_at,
            games.c.name,
            games.c.header_image,
        )
        .join(games, games.c.appid == leaderboard_cache.c.appid)
        .order_by(leaderboard_cache.c.rank)
    )
    with engine.connect() as conn:
        rows = [dict(row) for row in conn.execute(query).mappings()]
    for row in rows:
        row["delta"] = None if row["prev_ccu"] is None else row["ccu"] - row["prev_ccu"]
    return rows


def leaderboard(engine: Engine, view: str, today: date, *, limit: int = 100) -> list[dict[str, Any]]:
    """Rank games for ``view``: live counts, today's peak, or average daily peak over N days.

    Windowed views skip games released inside the window, since their
    average would cover only part of it.
    """
    if view not in LEADERBOARD_VIEWS:
        raise ValueError(f"view must be one of: {', '.join(LEADERBOARD_VIEWS)}")
    if view == "live":
        return live_ranking(engine)[:limit]

    days = LEADERBOARD_VIEWS[view]
    if view == "today":
        metric = func.max(daily_peaks.c.peak_ccu)
        window = daily_peaks.c.peak_date == today
        eligible = true()
    else:
        start = today - timedelta(days=days)
        metric = func.round(func.avg(daily_peaks.c.peak_ccu))
        window = daily_peaks.c.peak_date >= start
        eligible = or_(games.c.release_date.is_(None), games.c.release_date <= start)

    query = (
        select(daily_peaks.c.appid, metric.label("ccu"), games.c.name, games.c.header_image)
        .join(games, games.c.appid == daily_peaks.c.appid)
        .where(and_(window, eligible))
        .group_by(daily_peaks.c.appid, games.c.name, games.c.header_image)
        .order_by(metric.desc())
        .limit(limit)
    )
    with engine.connect() as conn:
        rows = [dict(row) for row in conn.execute(query).mappings()]
    for rank, row in enumerate(rows, start=1):
        row["rank"] = rank
        row["ccu"] = int(row["ccu"]) if row["ccu"] is not None else None
    return rows


def history(engine: Engine, appid: int, range_: str, *, now: datetime, today: date) -> dict[str, Any]:
    if range_ not in HISTORY_RANGES:
        raise ValueError("range must be day, week, or month")
    with engine.connect() as conn:
        all_time_peak = conn.execute(
            select(func.max(daily_peaks.c.peak_ccu)).where(daily_peaks.c.appid == appid)
        ).scalar()
        if range_ == "day":
            query = (
                select(ccu_snapshots.c.ccu, ccu_snapshots.c.captured_at.label("time"))
                .where(ccu_snapshots.c.appid == appid, ccu_snapshots.c.captured_at >= now - timedelta(hours=24))
                .order_by(ccu_snapshots.c.captured_at)
            )
        else:
            start = today - timedelta(days=7) if range_ == "week" else today - timedelta(days=30)
            condition = daily_peaks.c.peak_date > start if range_ == "week" else daily_peaks.c.peak_date >= start
            query = (
                select(daily_peaks.c.peak_ccu.label("ccu"), daily_peaks.c.peak_date.label("time"))
                .where(daily_peaks.c.appid == appid, condition)
                .order_by(daily_peaks.c.peak_date)
            )
        data = [dict(row) for row in conn.execute(query).mappings()]
    return {"appid": appid, "range": range_, "data": data, "all_time_peak": all_time_peak}


def ranking_entry(engine: Engine, appid: int) -> dict[str, Any] | None:
    with engine.connect() as conn:
        row = conn.execute(
            select(leaderboard_cache.c.current_ccu, leaderboard_cache.c.peak_24h).where(
                leaderboard_cache.c.appid == appid
            )
        ).mappings().first()
    return dict(row) if row else None


def movers(engine: Engine, *, limit: int = MOVERS_LIMIT) -> dict[str, Any]:
    rows = [row for row in live_ranking(engine) if row["prev_ccu"]]
    for row in rows:
        row["pct_change"] = round(row["delta"] * 100.0 / row["prev_ccu"], 1)
    rows.sort(key=lambda row: row["pct_change"], reverse=True)
    gainers = [row for row in rows if row["delta"] > 0][:limit]
    losers = [row for row in reversed(rows) if row["delta"] < 0][:limit]
    last_updated_at = rows[0]["last_updated_at"] if rows else None
    return {"gainers": gainers, "losers": losers, "last_updated_at": last_updated_at}


def recent_records(engine: Engine, *, limit: int = 50) -> list[dict[str, Any]]:
    query = (
        select(
            peak_records.c.id,
            peak_records.c.window_days,
            peak_records.c.ccu,
            peak_records.c.record_at,
            games.c.appid,
            games.c.name,
            games.c.header_image,
        )
        .join(games, games.c.appid == peak_records.c.appid)
        .order_by(peak_records.c.record_at.desc(), peak_records.c.id.desc())
        .limit(limit)
    )
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(query).mappings()]


def recent_news(engine: Engine, *, limit: int = 50) -> list[dict[str, Any]]:
    query = (
        select(
            news_articles.c.id,
            news_articles.c.appid,
            news_articles.c.title,
            news_articles.c.url,
            news_articles.c.source_name,
            news_articles.c.snippet,
            news_articles.c.published_at,
            news_articles.c.scraped_at,
            games.c.name.label("game_name"),
            games.c.header_image,
        )
        .join(games, games.c.appid == news_articles.c.appid)
        .order_by(news_articles.c.scraped_at.desc(), news_articles.c.id.desc())
        .limit(limit)
    )
    with engine.connect() as conn:
        return [dict(row) for row in conn.execute(query).mappings()]
