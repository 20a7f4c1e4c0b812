"""Current top-N ranking, replaced as one set each live poll."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine

from ccutracker.db.tables import leaderboard_cache
from ccutracker.ingest.models import RankedGame


@dataclass(slots=True)
class RankingRow:
    rank: int
    appid: int
    current_ccu: int
    peak_24h: int
    prev_ccu: int | None
    last_updated_at: datetime


def order_by_live_count(ranked: Sequence[RankedGame], counts: Mapping[int, int]) -> list[tuple[int, int, int]]:
    """Return ``(rank, appid, ccu)`` ordered by live count.

    The live count decides display order; games with equal counts keep
    the upstream list's relative order.
    """
    ordered = sorted(ranked, key=lambda game: (-counts[game.appid], game.rank))
    return [(position, game.appid, counts[game.appid]) for position, game in enumerate(ordered, start=1)]


def build_ranking(
    ordered: Sequence[tuple[int, int, int]],
    peaks_24h: Mapping[int, int],
    previous: Mapping[int, int],
    updated_at: datetime,
) -> list[RankingRow]:
    rows: list[RankingRow] = []
    for rank, appid, ccu in ordered:
        rows.append(
            RankingRow(
                rank=rank,
                appid=appid,
                current_ccu=ccu,
                peak_24h=max(peaks_24h.get(appid, ccu), ccu),
                prev_ccu=previous.get(appid),
                last_updated_at=updated_at,
            )
        )
    return rows


class RankingCache:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def previous_counts(self, conn: Connection) -> dict[int, int]:
        rows = conn.execute(select(leaderboard_cache.c.appid, leaderboard_cache.c.current_ccu)).all()
        return {appid: ccu for appid, ccu in rows}

    def replace(self, conn: Connection, rows: Sequence[RankingRow]) -> None:
        """Swap the whole ranking inside the caller's transaction."""
        conn.execute(leaderboard_cache.delete())
        if rows:
            conn.execute(
                leaderboard_cache.insert(),
                [
                    {
                        "rank": row.rank,
                        "appid": row.appid,
                        "current_ccu": row.current_ccu,
                        "peak_24h": row.peak_24h,
                        "prev_ccu": row.prev_ccu,
                        "last_updated_at": row.last_updated_at,
                    }
                    for row in rows
                ],
            )

    def load(self, conn: Connection | None = None) -> list[RankingRow]:
        stmt = select(leaderboard_cache).order_by(leaderboard_cache.c.rank)
        if conn is None:
            with self.engine.connect() as own:
                result = own.execute(stmt).mappings().all()
        else:
            result = conn.execute(stmt).mappings().all()
        return [RankingRow(**row) for row in result]

    def appids(self) -> set[int]:
        with self.engine.connect() as conn:
            return set(conn.execute(select(leaderboard_cache.c.appid)).scalars())
