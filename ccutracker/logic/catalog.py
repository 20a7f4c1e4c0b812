"""Game identity and metadata with an in-memory read-through cache."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.tables import games
from ccutracker.db.upsert import dialect_insert
from ccutracker.ingest.models import GameDetails
from ccutracker.utils.dates import utc_now

logger = logging.getLogger(__name__)

TTL_SECONDS = 24 * 60 * 60


@dataclass(slots=True)
class CatalogEntry:
    appid: int
    name: str
    header_image: str | None
    release_date: date | None
    fetched_at: float


def placeholder_details(appid: int) -> GameDetails:
    return GameDetails(appid=appid, name=f"App {appid}", header_image=None, release_date=None)


class GameCatalog:
    """Owns the ``games`` table and a process-local view of it.

    Populate with :meth:`warm` at startup; afterwards all writes go through
    :meth:`upsert` so the memory view never diverges from what was written.
    """

    def __init__(self, engine: Engine, *, ttl: float = TTL_SECONDS, clock: Callable[[], float] = time.monotonic) -> None:
        self.engine = engine
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[int, CatalogEntry] = {}
        self._known: set[int] = set()

    def warm(self) -> int:
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(
                    select(games.c.appid, games.c.name, games.c.header_image, games.c.release_date)
                ).all()
        except SQLAlchemyError as exc:
            logger.warning("Catalog warm failed (database may not be ready): %s", exc)
            return 0
        now = self._clock()
        for row in rows:
            self._remember(row.appid, row.name, row.header_image, row.release_date, now)
        logger.info("Catalog warmed with %s games", len(rows))
        return len(rows)

    def __contains__(self, appid: int) -> bool:
        return appid in self._known

    def missing(self, appids: Iterable[int]) -> list[int]:
        """Ids not present in the catalog, checking storage for ones not yet seen in memory."""
        candidates = [appid for appid in appids if appid not in self._known]
        if not candidates:
            return []
        with self.engine.connect() as conn:
            stored = set(conn.execute(select(games.c.appid).where(games.c.appid.in_(candidates))).scalars())
        self._known.update(stored)
        return [appid for appid in candidates if appid not in stored]

    def get(self, appid: int) -> CatalogEntry | None:
        entry = self._entries.get(appid)
        if entry and self._clock() - entry.fetched_at < self.ttl:
            return entry
        with self.engine.connect() as conn:
            row = conn.execute(
                select(games.c.name, games.c.header_image, games.c.release_date).where(games.c.appid == appid)
            ).first()
        if row is None:
            return None
        return self._remember(appid, row.name, row.header_image, row.release_date, self._clock())

    async def lookup(
        self, appid: int, fetch_metadata: Callable[[int], Awaitable[GameDetails | None]]
    ) -> CatalogEntry | None:
        """Like :meth:`get`, falling back to store metadata for games not yet catalogued.

        Fetched details are cached in memory only; the ``games`` table stays
        owned by the pollers.
        """
        entry = await asyncio.get_running_loop().run_in_executor(None, self.get, appid)
        if entry is not None:
            return entry
        details = await fetch_metadata(appid)
        if details is None:
            return None
        entry = CatalogEntry(appid, details.name, details.header_image, details.release_date, self._clock())
        self._entries[appid] = entry
        return entry

    def upsert(self, details: GameDetails) -> None:
        """Insert or refresh one game; a known image is never replaced by NULL."""
        with self.engine.begin() as conn:
            stmt = dialect_insert(conn, games).values(
                appid=details.appid,
                name=details.name,
                header_image=details.header_image,
                release_date=details.release_date,
                coming_soon=details.coming_soon,
                last_fetched_at=utc_now(),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[games.c.appid],
                set_={
                    "name": stmt.excluded.name,
                    "header_image": func.coalesce(stmt.excluded.header_image, games.c.header_image),
                    "release_date": func.coalesce(stmt.excluded.release_date, games.c.release_date),
                    "coming_soon": stmt.excluded.coming_soon,
                    "last_fetched_at": stmt.excluded.last_fetched_at,
                },
            )
            conn.execute(stmt)
        previous = self._entries.get(details.appid)
        self._remember(
            details.appid,
            details.name,
            details.header_image or (previous.header_image if previous else None),
            details.release_date or (previous.release_date if previous else None),
            self._clock(),
        )

    def set_release_date(self, appid: int, release_date: date) -> None:
        with self.engine.begin() as conn:
            conn.execute(games.update().where(games.c.appid == appid).values(release_date=release_date))
        entry = self._entries.get(appid)
        if entry:
            entry.release_date = release_date

    def missing_release_dates(self) -> list[tuple[int, str]]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(games.c.appid, games.c.name).where(games.c.release_date.is_(None)).order_by(games.c.appid)
            ).all()
        return [(row.appid, row.name) for row in rows]

    def _remember(self, appid, name, header_image, release_date, fetched_at) -> CatalogEntry:
        entry = CatalogEntry(appid, name, header_image, release_date, fetched_at)
        self._entries[appid] = entry
        self._known.add(appid)
        return entry
