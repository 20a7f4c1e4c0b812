"""Historical backfill, release-date repair and record detection entry points."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ccutracker.db.session import create_engine_from_env
from ccutracker.ingest.steam import SteamClient
from ccutracker.ingest.steamcharts import SteamChartsClient
from ccutracker.logic.backfill import BackfillSummary, HistoricalBackfillImporter
from ccutracker.logic.catalog import GameCatalog, placeholder_details
from ccutracker.logic.records import RecordDetector, RecordEvent

logger = logging.getLogger(__name__)

METADATA_DELAY_SECONDS = 1.5
HISTORY_DELAY_SECONDS = 2.0


@dataclass(slots=True)
class ReleaseDateSummary:
    updated: int = 0
    skipped: int = 0
    failed: int = 0


async def run_backfill_game(
    appid: int,
    engine: Engine | None = None,
    *,
    client: SteamChartsClient | None = None,
) -> BackfillSummary:
    """Import history for a game that just entered the catalog."""
    load_dotenv()
    engine = engine or create_engine_from_env()
    client = client or SteamChartsClient()
    try:
        return await HistoricalBackfillImporter(engine, client).import_many([appid])
    finally:
        await client.close()


async def ensure_catalog(
    catalog: GameCatalog,
    steam: SteamClient,
    appids: list[int],
    *,
    delay: float = METADATA_DELAY_SECONDS,
) -> list[int]:
    """Insert catalog rows for ``appids`` not yet known; returns the ids added."""
    loop = asyncio.get_running_loop()
    missing = await loop.run_in_executor(None, catalog.missing, appids)
    for index, appid in enumerate(missing):
        if index and delay:
            await asyncio.sleep(delay)
        details = await steam.fetch_metadata(appid) or placeholder_details(appid)
        await loop.run_in_executor(None, catalog.upsert, details)
        logger.info("Catalogued %s (%s)", details.name, appid)
    return missing


async def run_bulk_backfill(
    pages: int = 5,
    engine: Engine | None = None,
    *,
    steam: SteamClient | None = None,
    charts: SteamChartsClient | None = None,
    metadata_delay: float = METADATA_DELAY_SECONDS,
    history_delay: float = HISTORY_DELAY_SECONDS,
) -> BackfillSummary:
    """Seed the catalog from the historical top lists and import a year of peaks for each game."""
    load_dotenv()
    engine = engine or create_engine_from_env()
    steam = steam or SteamClient()
    charts = charts or SteamChartsClient()
    catalog = GameCatalog(engine)
    try:
        appids = await charts.fetch_top_appids(pages)
        logger.info("Discovered %s games across %s top pages", len(appids), pages)
        if not appids:
            return BackfillSummary()
        await ensure_catalog(catalog, steam, appids, delay=metadata_delay)
        importer = HistoricalBackfillImporter(engine, charts)
        return await importer.import_many(appids, delay=history_delay)
    finally:
        await steam.close()
        await charts.close()


async def run_release_dates(
    engine: Engine | None = None,
    *,
    steam: SteamClient | None = None,
    delay: float = METADATA_DELAY_SECONDS,
) -> ReleaseDateSummary:
    """Fill in missing release dates from store metadata."""
    load_dotenv()
    engine = engine or create_engine_from_env()
    steam = steam or SteamClient()
    catalog = GameCatalog(engine)
    loop = asyncio.get_running_loop()
    summary = ReleaseDateSummary()
    try:
        pending = await loop.run_in_executor(None, catalog.missing_release_dates)
        logger.info("%s games missing a release date", len(pending))
        for index, (appid, name) in enumerate(pending):
            if index and delay:
                await asyncio.sleep(delay)
            details = await steam.fetch_metadata(appid)
            if details is None:
                logger.warning("No metadata for %s (%s)", name, appid)
                summary.failed += 1
                continue
            if details.release_date is None:
                logger.info("%s (%s) has no parseable release date", name, appid)
                summary.skipped += 1
                continue
            try:
                await loop.run_in_executor(None, catalog.set_release_date, appid, details.release_date)
            except SQLAlchemyError as exc:
                logger.error("Release date write failed for %s: %s", appid, exc)
                summary.failed += 1
                continue
            summary.updated += 1
    finally:
        await steam.close()
    logger.info(
        "Release dates: %s updated, %s skipped, %s failed", summary.updated, summary.skipped, summary.failed
    )
    return summary


def detect_records(engine: Engine | None = None) -> list[RecordEvent]:
    load_dotenv()
    engine = engine or create_engine_from_env()
    try:
        return RecordDetector(engine).run()
    except SQLAlchemyError as exc:
        logger.error("Record detection failed: %s", exc)
        return []
