"""Typed results returned by the upstream clients."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime


@dataclass(slots=True)
class RankedGame:
    rank: int
    appid: int
    peak_in_game: int


@dataclass(slots=True)
class GameDetails:
    appid: int
    name: str
    header_image: str | None
    release_date: date | None
    coming_soon: bool = False


@dataclass(slots=True)
class UpcomingGame:
    rank: int
    appid: int
    name: str
    header_image: str | None


@dataclass(slots=True)
class Feed:
    name: str
    url: str


@dataclass(slots=True)
class FeedEntry:
    title: str
    link: str
    summary: str
    published_at: datetime | None
