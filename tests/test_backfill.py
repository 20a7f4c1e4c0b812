from datetime import date
from pathlib import Path

import httpx
import pytest
import respx
from sqlalchemy import func, select

from ccutracker.db.tables import daily_peaks, games
from ccutracker.errors import ItemFetchFailed
from ccutracker.ingest.steam import APP_DETAILS_URL, SteamClient
from ccutracker.ingest.steamcharts import STEAMCHARTS_BASE, SteamChartsClient
from ccutracker.jobs import backfill as backfill_job
from ccutracker.logic.backfill import HistoricalBackfillImporter, to_daily_peaks
from ccutracker.logic.timeseries import TimeSeriesStore
from ccutracker.utils.rate_limit import RateLimiter

FIXTURES = Path(__file__).parent / "fixtures" / "http"
TODAY = date(2024, 5, 10)

SERIES = [
    (1715040000000, 1000),
    (1715076000000, 1800),
    (1715126400000, None),
    (1715130000000, 2200),
    (1715212800000, 0),
    (1715216400000, 2500),
    (1715299200000, 1900),
]


@pytest.fixture(autouse=True)
def utc(monkeypatch):
    monkeypatch.setenv("TIMEZONE", "UTC")


def test_to_daily_peaks_takes_daily_max_and_skips_today():
    peaks = to_daily_peaks(SERIES, today=TODAY, days_back=365)
    assert peaks == {date(2024, 5, 7): 1800, date(2024, 5, 8): 2200, date(2024, 5, 9): 2500}


def test_to_daily_peaks_respects_window():
    assert to_daily_peaks(SERIES, today=TODAY, days_back=2) == {date(2024, 5, 8): 2200, date(2024, 5, 9): 2500}
    assert to_daily_peaks([], today=TODAY) == {}
    assert to_daily_peaks([(1715040000000, None)], today=TODAY) == {}


class FakeCharts:
    def __init__(self, series_by_app):
        self.series_by_app = series_by_app
        self.calls = []

    async def fetch_historical_series(self, appid):
        self.calls.append(appid)
        series = self.series_by_app.get(appid)
        if series is None:
            raise ItemFetchFailed(appid, "HTTP 404")
        return series


@pytest.mark.asyncio
async def test_import_is_idempotent(seeded_engine):
    importer = HistoricalBackfillImporter(seeded_engine, FakeCharts({730: SERIES}))
    first = await importer.import_game(730, today=TODAY)
    second = await importer.import_game(730, today=TODAY)

    assert first == second == 3
    with seeded_engine.connect() as conn:
        count = conn.execute(select(func.count()).select_from(daily_peaks)).scalar()
    assert count == 3
    assert TimeSeriesStore(seeded_engine).daily_peak(730, TODAY) is None


@pytest.mark.asyncio
async def test_import_never_lowers_live_peak(seeded_engine):
    store = TimeSeriesStore(seeded_engine)
    with seeded_engine.begin() as conn:
        store.upsert_peaks(conn, date(2024, 5, 9), {730: 9000})
    await HistoricalBackfillImporter(seeded_engine, FakeCharts({730: SERIES})).import_game(730, today=TODAY)
    assert store.daily_peak(730, date(2024, 5, 9)) == 9000
    assert store.daily_peak(730, date(2024, 5, 8)) == 2200


@pytest.mark.asyncio
async def test_import_many_isolates_failures(seeded_engine):
    charts = FakeCharts({730: SERIES, 570: SERIES})
    summary = await HistoricalBackfillImporter(seeded_engine, charts).import_many([730, 578080, 570], today=TODAY)

    assert charts.calls == [730, 578080, 570]
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert summary.failed_ids == [578080]
    assert summary.rows == 6


@pytest.mark.asyncio
async def test_bulk_backfill_seeds_catalog_and_history(engine):
    top = (FIXTURES / "steamcharts" / "top.html").read_text()
    chart = (FIXTURES / "steamcharts" / "chart-data.json").read_text()
    async with respx.mock() as router:
        router.get(f"{STEAMCHARTS_BASE}/top").mock(return_value=httpx.Response(200, text=top))
        router.get(f"{STEAMCHARTS_BASE}/app/730/chart-data.json").mock(return_value=httpx.Response(200, text=chart))
        router.get(f"{STEAMCHARTS_BASE}/app/570/chart-data.json").mock(return_value=httpx.Response(500))
        router.get(APP_DETAILS_URL, params__contains={"appids": "730"}).mock(
            return_value=httpx.Response(200, text=(FIXTURES / "steam" / "appdetails_730.json").read_text())
        )
        router.get(APP_DETAILS_URL, params__contains={"appids": "570"}).mock(return_value=httpx.Response(500))
        async with httpx.AsyncClient() as session:
            summary = await backfill_job.run_bulk_backfill(
                pages=1,
                engine=engine,
                steam=SteamClient("", session=session),
                charts=SteamChartsClient(session=session, rate_limiter=RateLimiter(rate=1000)),
                metadata_delay=0,
                history_delay=0,
            )

    assert summary.succeeded == 1
    assert summary.failed_ids == [570]
    with engine.connect() as conn:
        names = dict(conn.execute(select(games.c.appid, games.c.name)).all())
    assert names == {730: "Counter-Strike 2", 570: "App 570"}


@pytest.mark.asyncio
async def test_release_dates_filled_from_metadata(engine, add_games):
    add_games((730, "Counter-Strike 2"), (1, "Mystery"))
    async with respx.mock() as router:
        router.get(APP_DETAILS_URL, params__contains={"appids": "730"}).mock(
            return_value=httpx.Response(200, text=(FIXTURES / "steam" / "appdetails_730.json").read_text())
        )
        router.get(APP_DETAILS_URL, params__contains={"appids": "1"}).mock(
            return_value=httpx.Response(200, json={"1": {"success": True, "data": {"name": "Mystery", "release_date": {"date": "Coming soon"}}}})
        )
        async with httpx.AsyncClient() as session:
            summary = await backfill_job.run_release_dates(engine, steam=SteamClient("", session=session), delay=0)

    assert (summary.updated, summary.skipped, summary.failed) == (1, 1, 0)
    with engine.connect() as conn:
        release = conn.execute(select(games.c.release_date).where(games.c.appid == 730)).scalar()
    assert release == date(2012, 8, 21)


@pytest.mark.asyncio
async def test_malformed_history_does_not_stop_other_games(seeded_engine):
    chart = (FIXTURES / "steamcharts" / "chart-data.json").read_text()
    async with respx.mock() as router:
        router.get(f"{STEAMCHARTS_BASE}/app/730/chart-data.json").mock(
            return_value=httpx.Response(200, json=[[1715040000000, "n/a"]])
        )
        router.get(f"{STEAMCHARTS_BASE}/app/570/chart-data.json").mock(return_value=httpx.Response(200, text=chart))
        async with httpx.AsyncClient() as session:
            charts = SteamChartsClient(session=session, rate_limiter=RateLimiter(rate=1000))
            summary = await HistoricalBackfillImporter(seeded_engine, charts).import_many([730, 570], today=TODAY)

    assert (summary.succeeded, summary.failed) == (2, 0)
    assert TimeSeriesStore(seeded_engine).daily_peak(570, date(2024, 5, 9)) == 2500


class ExplodingCharts:
    async def fetch_historical_series(self, appid):
        if appid == 730:
            raise KeyError("unexpected")
        return SERIES


@pytest.mark.asyncio
async def test_unexpected_error_is_counted_per_game(seeded_engine):
    summary = await HistoricalBackfillImporter(seeded_engine, ExplodingCharts()).import_many([730, 570], today=TODAY)
    assert summary.failed_ids == [730]
    assert summary.succeeded == 1
    assert summary.rows == 3
