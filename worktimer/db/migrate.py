"""Small idempotent migrations for databases created by older releases."""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

logger = logging.getLogger("worktimer.migrate")

# Additive only. Columns are never dropped here.
TIME_ENTRY_COLUMNS: dict[str, str] = {
    "entity_kind": "TEXT NOT NULL DEFAULT 'task'",
    "duration_minutes": "INTEGER",
    "comment": "TEXT",
    "created_at": "TEXT NOT NULL DEFAULT ''",
}

OPEN_ENTRY_INDEX = "ux_time_entries_open"


def _column_names(engine: Engine, table: str) -> set[str]:
    inspector = inspect(engine)
    if not inspector.has_table(table):
        return set()
    return {column["name"] for column in inspector.get_columns(table)}


def _index_names(engine: Engine, table: str) -> set[str]:
    return {index["name"] for index in inspect(engine).get_indexes(table) if index.get("name")}


def _add_column(engine: Engine, table: str, col_def: str) -> None:
    with engine.begin() as conn:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {col_def}"))


def _create_index_if_not_exists(
    engine: Engine,
    table: str,
    name: str,
    cols: Iterable[str],
    unique: bool = False,
    where: str | None = None,
) -> None:
    cols_sql = ", ".join(cols)
    unique_sql = "UNIQUE " if unique else ""
    where_sql = f" WHERE {where}" if where else ""
    with engine.begin() as conn:
        conn.execute(text(f"CREATE {unique_sql}INDEX IF NOT EXISTS {name} ON {table} ({cols_sql}){where_sql}"))


def _duplicate_open_entities(engine: Engine) -> list[tuple[str, int]]:
    with engine.connect() as conn:
        rows = conn.execute(
            text(
                """
                SELECT entity_kind, entity_id
                FROM time_entries
                WHERE end_time IS NULL
                GROUP BY entity_kind, entity_id
                HAVING COUNT(*) > 1
                """
            )
        ).all()
    return [(row[0], row[1]) for row in rows]


def run_migrations(engine: Engine) -> None:
    """Bring an existing schema up to date with the models."""

    columns = _column_names(engine, "time_entries")
    if not columns:
        # Table absent: Base.metadata.create_all builds the current schema.
        return

    for name, dtype in TIME_ENTRY_COLUMNS.items():
        if name not in columns:
            _add_column(engine, "time_entries", f"{name} {dtype}")

    if OPEN_ENTRY_INDEX in _index_names(engine, "time_entries"):
        return

    duplicates = _duplicate_open_entities(engine)
    if duplicates:
        logger.warning(
            "open entry index skipped; entities with several open entries must be closed first",
            extra={"extra_data": {"entities": [f"{kind}:{entity_id}" for kind, entity_id in duplicates]}},
        )
        return

    _create_index_if_not_exists(
        engine,
        "time_entries",
        OPEN_ENTRY_INDEX,
        ["entity_kind", "entity_id"],
        unique=True,
        where="end_time IS NULL",
    )
