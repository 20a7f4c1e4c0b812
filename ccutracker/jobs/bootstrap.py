"""Startup: create tables, warm the catalog and take one live sample."""

from __future__ import annotations

import asyncio
import logging

from dotenv import load_dotenv
from sqlalchemy.engine import Engine

from ccutracker.db.migrate import run_migrations
from ccutracker.db.session import create_engine_from_env
from ccutracker.jobs.live import PollResult, run_live_poll
from ccutracker.jobs.side_effects import SideEffects
from ccutracker.logic.catalog import GameCatalog

logger = logging.getLogger(__name__)


async def bootstrap(engine: Engine | None = None, *, side_effects: SideEffects | None = None, **poll_kwargs) -> PollResult:
    load_dotenv()
    engine = engine or create_engine_from_env()
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, run_migrations, engine)
    known = await loop.run_in_executor(None, GameCatalog(engine).warm)
    logger.info("Catalog holds %s games; running initial live poll", known)
    return await run_live_poll(engine, side_effects=side_effects, **poll_kwargs)


def main() -> None:  # pragma: no cover - CLI entry
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    result = asyncio.run(bootstrap())
    raise SystemExit(0 if result.ok else 1)


if __name__ == "__main__":  # pragma: no cover
    main()
