from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from ccutracker.api import main
from ccutracker.db.tables import games
from ccutracker.ingest.models import GameDetails, UpcomingGame
from ccutracker.logic.ranking import RankingCache, RankingRow
from ccutracker.logic.timeseries import TimeSeriesStore
from ccutracker.utils.dates import today_in_tz, utc_now


async def no_metadata(appid):
    return None


@pytest.fixture()
def client(seeded_engine, monkeypatch):
    monkeypatch.setenv("TIMEZONE", "UTC")
    main.app.dependency_overrides[main.get_engine] = lambda: seeded_engine
    main.app.dependency_overrides[main.get_metadata_fetcher] = lambda: no_metadata
    main.upcoming_cache.clear()
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture()
def ranked(seeded_engine):
    now = utc_now()
    rows = [
        RankingRow(1, 730, 1200, 1300, 1000, now),
        RankingRow(2, 570, 400, 800, 500, now),
        RankingRow(3, 578080, 90, 90, None, now),
    ]
    with seeded_engine.begin() as conn:
        RankingCache(seeded_engine).replace(conn, rows)
    return seeded_engine


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_live_ranking_with_trend(client, ranked):
    body = client.get("/api/live").json()
    assert body["count"] == 3
    first = body["data"][0]
    assert (first["appid"], first["ccu"], first["delta"]) == (730, 1200, 200)
    assert body["data"][2]["delta"] is None


def test_leaderboard_views(client, seeded_engine, add_games):
    today = today_in_tz()
    add_games((1, "Fresh Release", today - timedelta(days=2)))
    store = TimeSeriesStore(seeded_engine)
    with seeded_engine.begin() as conn:
        store.upsert_peaks(conn, today, {730: 100, 570: 300, 1: 50})
        store.upsert_peaks(conn, today - timedelta(days=3), {730: 900, 570: 100, 1: 9000})

    today_view = client.get("/api/leaderboard", params={"view": "today"}).json()
    assert [row["appid"] for row in today_view["data"]] == [570, 730, 1]

    week = client.get("/api/leaderboard", params={"view": "7d"}).json()
    assert [(row["appid"], row["ccu"]) for row in week["data"]] == [(730, 500), (570, 200)]

    assert client.get("/api/leaderboard", params={"view": "2d"}).status_code == 400


def test_history_ranges(client, seeded_engine):
    today = today_in_tz()
    store = TimeSeriesStore(seeded_engine)
    store.record(730, 700, utc_now() - timedelta(hours=2), today)
    with seeded_engine.begin() as conn:
        store.upsert_peaks(conn, today - timedelta(days=20), {730: 5000})

    day = client.get("/api/history/730", params={"range": "day"}).json()
    assert [point["ccu"] for point in day["data"]] == [700]
    assert day["all_time_peak"] == 5000

    month = client.get("/api/history/730", params={"range": "month"}).json()
    assert [point["ccu"] for point in month["data"]] == [5000, 700]

    assert client.get("/api/history/730", params={"range": "year"}).status_code == 400


def test_game_detail(client, ranked):
    body = client.get("/api/games/730").json()
    assert body["name"] == "Counter-Strike 2"
    assert body["current_ccu"] == 1200
    assert client.get("/api/games/999").status_code == 404


def test_game_detail_falls_back_to_store_metadata(client, ranked, seeded_engine):
    requested = []

    async def fetch(appid):
        requested.append(appid)
        return GameDetails(appid=appid, name="Not Yet Tracked", header_image="https://img/1.jpg", release_date=None)

    main.app.dependency_overrides[main.get_metadata_fetcher] = lambda: fetch
    body = client.get("/api/games/4242").json()
    assert (body["appid"], body["name"], body["current_ccu"]) == (4242, "Not Yet Tracked", None)

    assert client.get("/api/games/730").json()["name"] == "Counter-Strike 2"
    assert requested == [4242]
    with seeded_engine.connect() as conn:
        assert conn.execute(select(games.c.appid).where(games.c.appid == 4242)).first() is None


def test_movers(client, ranked):
    body = client.get("/api/movers").json()
    assert [row["appid"] for row in body["gainers"]] == [730]
    assert [row["appid"] for row in body["losers"]] == [570]


def test_news_limit_is_clamped(client, seeded_engine):
    from ccutracker.db.tables import news_articles

    now = utc_now()
    with seeded_engine.begin() as conn:
        conn.execute(
            news_articles.insert(),
            [
                {"appid": 730, "title": f"t{i}", "url": f"https://n/{i}", "source_name": "x", "scraped_at": now}
                for i in range(3)
            ],
        )
    assert client.get("/api/news", params={"limit": 0}).json()["count"] == 1
    assert client.get("/api/news", params={"limit": 500}).json()["count"] == 3


def test_records_empty(client):
    assert client.get("/api/records").json() == {"data": [], "count": 0}


def test_upcoming_cached_and_stale_on_error(client):
    calls = []

    async def loader():
        calls.append(1)
        if len(calls) > 1:
            raise httpx.ConnectError("down")
        return [UpcomingGame(1, 1030300, "Hollow Knight: Silksong", None)]

    main.app.dependency_overrides[main.get_upcoming_loader] = lambda: loader

    first = client.get("/api/upcoming").json()
    second = client.get("/api/upcoming").json()
    assert first == second
    assert first["data"][0]["appid"] == 1030300
    assert len(calls) == 1

    main.upcoming_cache.peek(main.UPCOMING_KEY).fetched_at -= main.UPCOMING_TTL_SECONDS + 1
    stale = client.get("/api/upcoming").json()
    assert stale == first
    assert len(calls) == 2


def test_upcoming_unavailable_without_cache(client):
    async def loader():
        raise httpx.ConnectError("down")

    main.app.dependency_overrides[main.get_upcoming_loader] = lambda: loader
    assert client.get("/api/upcoming").status_code == 503
