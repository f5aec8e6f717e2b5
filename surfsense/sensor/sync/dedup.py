"""Deduplication and merge rules for session collections.

One rule is used everywhere sessions from different sources meet (remote
history, durable local history, pending sessions from this login):

    concatenate in priority order → keep the first copy of each id →
    sort by start_time descending

A later copy with the same id is a duplicate, never an overwrite, even when
its payload differs.
"""

from __future__ import annotations

from typing import Iterable

from surfsense.models.sessions import Session


def dedupe_sessions(sessions: Iterable[Session]) -> list[Session]:
    """Keep the first occurrence of each session id, preserving order."""
    kept: dict[str, Session] = {}
    for session in sessions:
        kept.setdefault(session.id, session)
    return list(kept.values())


def sort_newest_first(sessions: Iterable[Session]) -> list[Session]:
    """Sort by start_time descending. Stable for equal start times."""
    return sorted(sessions, key=lambda s: s.start_time, reverse=True)


def merge_sessions(*sources: Iterable[Session]) -> list[Session]:
    """Merge session sources in priority order (first source wins on id).

    Args:
        sources: Session iterables, highest priority first.

    Returns:
        Deduplicated sessions, newest first.
    """
    combined: list[Session] = []
    for source in sources:
        combined.extend(source)
    return sort_newest_first(dedupe_sessions(combined))


def build_upsert_query(
    table: str,
    columns: list[str],
    conflict_columns: list[str],
    update_columns: list[str] | None = None,
) -> str:
    """Build a PostgreSQL INSERT ... ON CONFLICT DO UPDATE (upsert) query.

    Generates idempotent writes, so a remote submission retried from the
    outbox lands on the same row.

    Args:
        table:            Target table name.
        columns:          All columns to insert.
        conflict_columns: Columns that define the UNIQUE constraint.
        update_columns:   Columns to update on conflict (defaults to non-key columns).

    Returns:
        Parameterized SQL string.
    """
    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]

    placeholders = ", ".join(f"${i + 1}" for i in range(len(columns)))
    col_list = ", ".join(columns)
    conflict_target = ", ".join(conflict_columns)

    if update_columns:
        update_set = ", ".join(f"{col} = EXCLUDED.{col}" for col in update_columns)
        update_set += ", updated_at = NOW()"
        do_clause = f"DO UPDATE SET {update_set}"
    else:
        do_clause = "DO NOTHING"

    return (
        f"INSERT INTO {table} ({col_list}) "
        f"VALUES ({placeholders}) "
        f"ON CONFLICT ({conflict_target}) {do_clause}"
    )
