"""Table definitions for the tracker's durable state."""

from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
)

metadata = MetaData()

games = Table(
    "games",
    metadata,
    Column("appid", BigInteger, primary_key=True, autoincrement=False),
    Column("name", Text, nullable=False),
    Column("header_image", Text),
    Column("release_date", Date),
    Column("coming_soon", Boolean, nullable=False, default=False),
    Column("last_fetched_at", DateTime(timezone=True)),
)

ccu_snapshots = Table(
    "ccu_snapshots",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appid", BigInteger, ForeignKey("games.appid"), nullable=False),
    Column("captured_at", DateTime(timezone=True), nullable=False),
    Column("ccu", Integer, nullable=False),
    Index("ix_ccu_snapshots_appid_captured_at", "appid", "captured_at"),
    Index("ix_ccu_snapshots_captured_at", "captured_at"),
)

daily_peaks = Table(
    "daily_peaks",
    metadata,
    Column("appid", BigInteger, ForeignKey("games.appid"), primary_key=True),
    Column("peak_date", Date, primary_key=True),
    Column("peak_ccu", Integer, nullable=False),
)

leaderboard_cache = Table(
    "leaderboard_cache",
    metadata,
    Column("appid", BigInteger, ForeignKey("games.appid"), primary_key=True),
    Column("rank", Integer, nullable=False),
    Column("current_ccu", Integer, nullable=False),
    Column("peak_24h", Integer, nullable=False),
    Column("prev_ccu", Integer),
    Column("last_updated_at", DateTime(timezone=True), nullable=False),
)

peak_records = Table(
    "peak_records",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appid", BigInteger, ForeignKey("games.appid"), nullable=False),
    Column("window_days", Integer, nullable=False),
    Column("ccu", Integer, nullable=False),
    Column("record_date", Date, nullable=False),
    Column("record_at", DateTime(timezone=True), nullable=False),
    UniqueConstraint("appid", "window_days", "record_date", name="uq_peak_records_daily"),
)

news_articles = Table(
    "news_articles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appid", BigInteger, ForeignKey("games.appid"), nullable=False),
    Column("title", Text, nullable=False),
    Column("url", Text, nullable=False, unique=True),
    Column("source_name", Text, nullable=False),
    Column("snippet", Text),
    Column("published_at", DateTime(timezone=True)),
    Column("scraped_at", DateTime(timezone=True), nullable=False),
)
