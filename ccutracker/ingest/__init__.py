"""Ingestion helpers."""

from __future__ import annotations

import pathlib

import yaml

from ccutracker.ingest.models import Feed

FEEDS_PATH = pathlib.Path(__file__).with_name("feeds.yml")


def _load_config(path: pathlib.Path = FEEDS_PATH) -> dict:
    return yaml.safe_load(path.read_text()) or {}


def load_feeds(limit: int | None = None, *, path: pathlib.Path = FEEDS_PATH) -> list[Feed]:
    feeds = [Feed(**item) for item in _load_config(path).get("feeds", [])]
    if limit:
        return feeds[:limit]
    return feeds


def load_keywords(*, path: pathlib.Path = FEEDS_PATH) -> list[str]:
    return [str(kw).lower() for kw in _load_config(path).get("keywords", [])]
