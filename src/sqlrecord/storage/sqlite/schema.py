# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Append-only schema reconciliation for one table.

The live table is introspected once and cached. Later calls only add columns
that a record declares and the table lacks. Columns are never dropped,
renamed or retyped: the first affinity seen for a name wins.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlrecord.storage.errors import EngineError
from sqlrecord.storage.sqlite.affinity import StorageAffinity, affinity_from_declaration
from sqlrecord.storage.sqlite.reflect import FieldSpec
from sqlrecord.storage.sqlite.utils import engine_call, quote_identifier

log = logging.getLogger(__name__)

__all__ = [
    "Column",
    "TableSchema",
    "TableSchemaManager",
    "table_exists",
    "live_columns",
    "list_tables",
]

PRIMARY_KEY = "id"


@dataclass
class Column:
    """A named column with its storage affinity."""

    name: str
    affinity: StorageAffinity
    logical_type: Any = None

    @property
    def declaration(self) -> str:
        return f"{quote_identifier(self.name)} {self.affinity.declaration}"

    @classmethod
    def from_field(cls, spec: FieldSpec) -> Column:
        affinity = spec.affinity
        if spec.name != PRIMARY_KEY and affinity is StorageAffinity.PRIMARY_KEY_INTEGER:
            affinity = StorageAffinity.INTEGER
        return cls(spec.name, affinity, spec.logical_type)

    def __str__(self) -> str:
        target = getattr(self.logical_type, "__name__", None) or "?"
        return f"{self.declaration} -> {target}"


@dataclass
class TableSchema:
    """Ordered column list of one table."""

    table_name: str
    columns: list[Column] = field(default_factory=list)

    def names(self) -> list[str]:
        return [col.name for col in self.columns]

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def declared_types(self) -> dict[str, str]:
        return {col.name: col.affinity.declaration for col in self.columns}

    def __contains__(self, name: object) -> bool:
        return any(col.name == name for col in self.columns)

    def __bool__(self) -> bool:
        return bool(self.columns)


# ---- Introspection ----------------------------------------------------------


def table_exists(conn: sqlite3.Connection, table_name: str) -> bool:
    with engine_call("table_exists"):
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)
        ).fetchone()
    return row is not None


def list_tables(conn: sqlite3.Connection) -> list[str]:
    """User tables of the main database, in creation order."""

    with engine_call("list_tables"):
        rows = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY rowid"
        ).fetchall()
    return [row[0] for row in rows]


def live_columns(conn: sqlite3.Connection, table_name: str) -> list[Column]:
    """Return the live columns of ``table_name`` (empty if it does not exist)."""

    with engine_call("live_columns"):
        rows = conn.execute(f"PRAGMA table_info({quote_identifier(table_name)})").fetchall()
    columns = []
    for _cid, name, decl, _notnull, _default, pk in rows:
        affinity = affinity_from_declaration(decl)
        if pk and affinity is StorageAffinity.INTEGER:
            affinity = StorageAffinity.PRIMARY_KEY_INTEGER
        columns.append(Column(name, affinity))
    return columns


# ---- Reconciliation ---------------------------------------------------------


class TableSchemaManager:
    """Owns the cached column list of one table."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        self._schema: TableSchema | None = None

    @property
    def schema(self) -> TableSchema | None:
        return self._schema

    def introspect(self, conn: sqlite3.Connection) -> TableSchema:
        """Reload the cached schema from the live table."""

        self._schema = TableSchema(self.table_name, live_columns(conn, self.table_name))
        return self._schema

    def ensure_schema(self, conn: sqlite3.Connection, fields: Sequence[FieldSpec]) -> list[str]:
        """Create the table or add the columns it is missing.

        Returns the names of the columns created or added, in declaration
        order. Any engine error aborts the remaining additions; the cache
        keeps every column added before the failure so a later call
        completes the rest.
        """

        if not fields:
            return []
        schema = self._schema if self._schema else self.introspect(conn)
        if not schema:
            return self._create(conn, fields)

        added: list[str] = []
        for spec in fields:
            if spec.name in schema or spec.name in added:
                continue
            column = Column.from_field(spec)
            if column.name == PRIMARY_KEY:
                log.warning("Table %s has no %r column; it cannot be added", self.table_name, PRIMARY_KEY)
                continue
            sql = f"ALTER TABLE {quote_identifier(self.table_name)} ADD COLUMN {column.declaration}"
            try:
                with engine_call("ensure_schema"):
                    conn.execute(sql)
            except EngineError as exc:
                if "duplicate column name" not in exc.message:
                    raise
                # Another connection added it; resync with the live table.
                log.debug("Column %s.%s already present", self.table_name, column.name)
                schema = self.introspect(conn)
                continue
            schema.columns.append(column)
            added.append(column.name)
            log.info("Added column %s to %s", column.declaration, self.table_name)
        return added

    def _create(self, conn: sqlite3.Connection, fields: Sequence[FieldSpec]) -> list[str]:
        id_column = Column(PRIMARY_KEY, StorageAffinity.PRIMARY_KEY_INTEGER)
        columns = [id_column]
        for spec in fields:
            if spec.name == PRIMARY_KEY:
                if not spec.affinity.is_integer:
                    log.warning(
                        "Field 'id' of %s is %s; the table keeps an INTEGER PRIMARY KEY",
                        self.table_name,
                        spec.affinity.name,
                    )
                id_column.logical_type = spec.logical_type
                continue
            if any(col.name == spec.name for col in columns):
                continue
            columns.append(Column.from_field(spec))

        definition = ", ".join(col.declaration for col in columns)
        with engine_call("ensure_schema"):
            conn.execute(f"CREATE TABLE IF NOT EXISTS {quote_identifier(self.table_name)} ({definition})")
        self._schema = TableSchema(self.table_name, columns)
        log.info("Created table %s (%s)", self.table_name, definition)
        return [col.name for col in columns]
