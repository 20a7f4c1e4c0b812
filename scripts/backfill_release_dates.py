"""Fill in release dates for catalog games that are missing one."""

from __future__ import annotations

import asyncio
import logging

from ccutracker.jobs.backfill import run_release_dates


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    summary = asyncio.run(run_release_dates())
    print(f"Release dates: {summary.updated} updated, {summary.skipped} skipped, {summary.failed} failed")


if __name__ == "__main__":
    main()
