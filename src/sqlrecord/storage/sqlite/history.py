# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
History shadow tables.

``<table>_history`` holds one snapshot per insert or update of a row, stamped
with the UTC time of the change. Snapshots are written by persistent triggers,
so every connection that writes the table keeps the history current. The
triggers list their columns explicitly and are rebuilt whenever the main table
gains columns.
"""

from __future__ import annotations

import logging
import sqlite3

from sqlrecord.storage.sqlite.affinity import StorageAffinity
from sqlrecord.storage.sqlite.queries import (
    TIMESTAMP_COLUMN,
    create_history_table,
    history_table_name,
)
from sqlrecord.storage.sqlite.schema import Column, live_columns, table_exists
from sqlrecord.storage.sqlite.utils import engine_call, quote_identifier

log = logging.getLogger(__name__)

__all__ = ["enable_history", "sync_history", "has_history", "TIMESTAMP_SQL"]

# Same shape as queries.format_timestamp: 2025-01-31T12:00:00.000Z
TIMESTAMP_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


def has_history(conn: sqlite3.Connection, table: str) -> bool:
    return table_exists(conn, history_table_name(table))


def enable_history(conn: sqlite3.Connection, table: str) -> None:
    """Create the history table for ``table`` and start recording snapshots."""

    if not table_exists(conn, table):
        raise ValueError(f"Cannot enable history for missing table {table!r}")
    query = create_history_table(table)
    with engine_call("enable_history"):
        conn.execute(query.sql, query.params)
    sync_history(conn, table)
    log.info("History enabled for %s", table)


def sync_history(conn: sqlite3.Connection, table: str) -> list[str]:
    """Mirror new columns into the history table and rebuild its triggers.

    Returns the columns added to the history table.
    """

    history = history_table_name(table)
    main_columns = live_columns(conn, table)
    present = {col.name for col in live_columns(conn, history)}
    added = []
    with engine_call("sync_history"):
        for column in main_columns:
            if column.name in present:
                continue
            conn.execute(
                f"ALTER TABLE {quote_identifier(history)} ADD COLUMN "
                f"{quote_identifier(column.name)} {_history_declaration(column)}"
            )
            added.append(column.name)
        _rebuild_triggers(conn, table, [col.name for col in main_columns])
    if added:
        log.info("History table %s gained columns %s", history, added)
    return added


def _history_declaration(column: Column) -> str:
    # Snapshots repeat ids, so the history copy of the key is a plain integer.
    if column.affinity is StorageAffinity.PRIMARY_KEY_INTEGER:
        return StorageAffinity.INTEGER.declaration
    return column.affinity.declaration


def _rebuild_triggers(conn: sqlite3.Connection, table: str, columns: list[str]) -> None:
    history = history_table_name(table)
    targets = ", ".join([*(quote_identifier(name) for name in columns), TIMESTAMP_COLUMN])
    values = ", ".join([*(f"NEW.{quote_identifier(name)}" for name in columns), TIMESTAMP_SQL])
    for event in ("INSERT", "UPDATE"):
        trigger = quote_identifier(f"{history}_{event.lower()}")
        conn.execute(f"DROP TRIGGER IF EXISTS {trigger}")
        conn.execute(
            f"CREATE TRIGGER {trigger} AFTER {event} ON {quote_identifier(table)} "
            f"BEGIN INSERT INTO {quote_identifier(history)} ({targets}) VALUES ({values}); END"
        )
