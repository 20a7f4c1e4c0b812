"""Seed the catalog from the historical top lists and import a year of daily peaks."""

from __future__ import annotations

import argparse
import asyncio
import logging

from ccutracker.jobs.backfill import run_bulk_backfill


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--pages", type=int, default=5, help="number of top-list pages to scan")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    summary = asyncio.run(run_bulk_backfill(args.pages))
    print(f"Backfill finished: {summary.succeeded} ok, {summary.failed} failed, {summary.rows} rows")
    if summary.failed_ids:
        print("Failed appids: " + ", ".join(str(appid) for appid in summary.failed_ids))


if __name__ == "__main__":
    main()
