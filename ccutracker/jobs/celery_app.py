"""Celery configuration for scheduled jobs."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime

import pendulum
from celery import Celery
from celery.schedules import crontab

from ccutracker.jobs.locks import redis_url, single_instance
from ccutracker.utils.dates import timezone_name

NEWS_TIMEZONE = os.environ.get("NEWS_TIMEZONE", "America/New_York")

celery_app = Celery("ccutracker", broker=redis_url(), backend=redis_url())
celery_app.conf.timezone = "UTC"
celery_app.conf.enable_utc = True


def news_clock() -> datetime:
    return datetime.now(pendulum.timezone(NEWS_TIMEZONE))


def local_clock() -> datetime:
    """Now in ``TIMEZONE``, the zone that decides which day a peak belongs to."""
    return datetime.now(pendulum.timezone(timezone_name()))


celery_app.conf.beat_schedule = {
    "live-poll": {
        "task": "ccutracker.jobs.live.run_live_poll",
        "schedule": crontab(minute=0),
        "options": {"expires": 50 * 60},
    },
    "extended-poll": {
        "task": "ccutracker.jobs.extended.run_extended_poll",
        "schedule": crontab(minute=30),
        "options": {"expires": 50 * 60},
    },
    "daily-peak-safety-net": {
        "task": "ccutracker.jobs.daily.run_daily_peak",
        "schedule": crontab(hour=23, minute=55, nowfun=local_clock),
        "options": {"expires": 60 * 60},
    },
    "snapshot-prune": {
        "task": "ccutracker.jobs.daily.run_prune",
        "schedule": crontab(hour=1, minute=0),
        "options": {"expires": 60 * 60},
    },
    "news-scrape": {
        "task": "ccutracker.jobs.news.run_news",
        "schedule": crontab(hour=9, minute=0, nowfun=news_clock),
        "options": {"expires": 60 * 60},
    },
}


@celery_app.task(name="ccutracker.jobs.live.run_live_poll")
def run_live_poll_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.live import run_live_poll

    with single_instance("live-poll", timeout=55 * 60) as acquired:
        if acquired:
            asyncio.run(run_live_poll())


@celery_app.task(name="ccutracker.jobs.extended.run_extended_poll")
def run_extended_poll_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.extended import run_extended_poll

    with single_instance("extended-poll", timeout=55 * 60) as acquired:
        if acquired:
            asyncio.run(run_extended_poll())


@celery_app.task(name="ccutracker.jobs.daily.run_daily_peak")
def run_daily_peak_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.daily import run_daily_peak

    with single_instance("daily-peak", timeout=30 * 60) as acquired:
        if acquired:
            run_daily_peak()


@celery_app.task(name="ccutracker.jobs.daily.run_prune")
def run_prune_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.daily import run_prune

    with single_instance("snapshot-prune", timeout=30 * 60) as acquired:
        if acquired:
            run_prune()


@celery_app.task(name="ccutracker.jobs.news.run_news")
def run_news_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.news import run_news

    with single_instance("news-scrape", timeout=30 * 60) as acquired:
        if acquired:
            asyncio.run(run_news())


@celery_app.task(name="ccutracker.jobs.backfill.detect_records")
def detect_records_task():  # pragma: no cover - executed by worker
    from ccutracker.jobs.backfill import detect_records

    detect_records()


@celery_app.task(name="ccutracker.jobs.backfill.run_backfill_game")
def backfill_game_task(appid: int):  # pragma: no cover - executed by worker
    from ccutracker.jobs.backfill import run_backfill_game

    with single_instance(f"backfill:{appid}", timeout=10 * 60) as acquired:
        if acquired:
            asyncio.run(run_backfill_game(appid))
