from datetime import datetime, timedelta, timezone

from sqlalchemy import select

from ccutracker.db.tables import peak_records
from ccutracker.logic.ranking import RankingCache, RankingRow
from ccutracker.logic.records import RecordDetector, prior_window_max
from ccutracker.logic.timeseries import TimeSeriesStore

NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
TODAY = NOW.date()


def _rank(engine, counts):
    rows = [RankingRow(position, appid, ccu, ccu, None, NOW) for position, (appid, ccu) in enumerate(counts.items(), 1)]
    with engine.begin() as conn:
        RankingCache(engine).replace(conn, rows)


def _peaks(engine, appid, values):
    store = TimeSeriesStore(engine)
    with engine.begin() as conn:
        for days_ago, value in values.items():
            store.upsert_peaks(conn, TODAY - timedelta(days=days_ago), {appid: value})


def test_prior_window_excludes_today(seeded_engine):
    _peaks(seeded_engine, 730, {0: 99999, 3: 800, 20: 1500})
    with seeded_engine.connect() as conn:
        assert prior_window_max(conn, 730, 7, TODAY) == 800
        assert prior_window_max(conn, 730, 30, TODAY) == 1500
        assert prior_window_max(conn, 570, 7, TODAY) is None


def test_detects_records_per_window(seeded_engine):
    _peaks(seeded_engine, 730, {3: 800, 20: 1500})
    _rank(seeded_engine, {730: 1000, 570: 50})

    events = RecordDetector(seeded_engine, windows=(7, 30, 90)).run(today=TODAY, now=NOW)

    # 570 has no history and is skipped; 730 beats only the 7-day max.
    assert [(event.appid, event.window_days, event.ccu) for event in events] == [(730, 7, 1000)]


def test_record_logged_once_per_day(seeded_engine):
    _peaks(seeded_engine, 730, {1: 100})
    _rank(seeded_engine, {730: 500})
    detector = RecordDetector(seeded_engine, windows=(7,))

    assert len(detector.run(today=TODAY, now=NOW)) == 1
    _rank(seeded_engine, {730: 700})
    assert detector.run(today=TODAY, now=NOW + timedelta(hours=1)) == []

    with seeded_engine.connect() as conn:
        rows = conn.execute(select(peak_records.c.ccu)).scalars().all()
    assert rows == [500]


def test_equal_count_is_not_a_record(seeded_engine):
    _peaks(seeded_engine, 730, {1: 500})
    _rank(seeded_engine, {730: 500})
    assert RecordDetector(seeded_engine, windows=(7,)).run(today=TODAY, now=NOW) == []
