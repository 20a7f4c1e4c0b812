from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from ccutracker.db.tables import games, metadata


@pytest.fixture()
def engine():
    # One shared connection so executor threads see the same in-memory database.
    engine = create_engine(
        "sqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def add_games(engine):
    def _add(*rows):
        with engine.begin() as conn:
            conn.execute(
                games.insert(),
                [
                    {
                        "appid": row[0],
                        "name": row[1],
                        "header_image": None,
                        "release_date": row[2] if len(row) > 2 else None,
                        "coming_soon": False,
                    }
                    for row in rows
                ],
            )

    return _add


@pytest.fixture()
def seeded_engine(engine, add_games):
    add_games((730, "Counter-Strike 2"), (570, "Dota 2"), (578080, "PUBG: BATTLEGROUNDS"))
    return engine


@pytest.fixture()
def now():
    return datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def today(now):
    return now.date()
