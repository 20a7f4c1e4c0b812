"""Dialect-aware conditional writes.

Every writer of ``daily_peaks`` goes through :func:`upsert_daily_peaks` so
that the stored value is ``max(existing, incoming)`` regardless of which job
wrote first.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date

from sqlalchemy import Table, func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection

from ccutracker.db.tables import daily_peaks


def dialect_insert(conn: Connection, table: Table):
    if conn.dialect.name == "sqlite":
        return sqlite.insert(table)
    return postgresql.insert(table)


def merge_max(conn: Connection, existing, incoming):
    """SQL expression for ``max(existing, incoming)``."""
    if conn.dialect.name == "sqlite":
        return func.max(existing, incoming)
    return func.greatest(existing, incoming)


def upsert_daily_peaks(conn: Connection, rows: Iterable[Mapping[str, object]]) -> int:
    """Insert ``{appid, peak_date, peak_ccu}`` rows; conflicts keep the larger value."""
    payload = [dict(row) for row in rows]
    if not payload:
        return 0
    stmt = dialect_insert(conn, daily_peaks)
    stmt = stmt.on_conflict_do_update(
        index_elements=[daily_peaks.c.appid, daily_peaks.c.peak_date],
        set_={"peak_ccu": merge_max(conn, daily_peaks.c.peak_ccu, stmt.excluded.peak_ccu)},
    )
    conn.execute(stmt, payload)
    return len(payload)


def upsert_daily_peak(conn: Connection, appid: int, peak_date: date, peak_ccu: int) -> None:
    upsert_daily_peaks(conn, [{"appid": appid, "peak_date": peak_date, "peak_ccu": peak_ccu}])


def insert_or_ignore(conn: Connection, table: Table, row: Mapping[str, object], index_elements: list) -> int:
    """Insert ``row`` unless it collides with ``index_elements``; returns rows inserted."""
    stmt = dialect_insert(conn, table).values(**row).on_conflict_do_nothing(index_elements=index_elements)
    return conn.execute(stmt).rowcount
