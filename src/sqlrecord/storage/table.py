# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Record-level access to one table.

A :class:`Table` is obtained from :meth:`Database.table` and cached for the
life of the connection. It only holds a weak reference to its database, so it
never keeps the connection open; using a handle after the database is closed
raises :class:`~sqlrecord.storage.errors.ConnectionClosedError`.
"""

from __future__ import annotations

import logging
import sqlite3
import weakref
from collections.abc import Mapping
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

import pandas as pd

from sqlrecord.storage.errors import ConnectionClosedError
from sqlrecord.storage.sqlite import history as _history
from sqlrecord.storage.sqlite import queries
from sqlrecord.storage.sqlite.codec import decode, encode
from sqlrecord.storage.sqlite.frames import ColumnType, read_frame
from sqlrecord.storage.sqlite.queries import Filter, Predicate, Query
from sqlrecord.storage.sqlite.reflect import fields_of, fields_of_value
from sqlrecord.storage.sqlite.schema import PRIMARY_KEY, TableSchema, TableSchemaManager
from sqlrecord.storage.sqlite.statement import Statement
from sqlrecord.storage.sqlite.utils import quote_identifier

if TYPE_CHECKING:
    from sqlrecord.storage.database import Database

log = logging.getLogger(__name__)

__all__ = ["Table"]

T = TypeVar("T")


class Table:
    """Upsert, read, delete and history recall of records in one table."""

    def __init__(self, database: Database, name: str) -> None:
        self.name = name
        self._database = weakref.ref(database)
        self._schema = TableSchemaManager(name)

    def __repr__(self) -> str:
        return f"<Table {self.name!r}>"

    # ------------------------------------------------------------------ #
    # Plumbing                                                           #
    # ------------------------------------------------------------------ #
    @property
    def database(self) -> Database:
        database = self._database()
        if database is None or database.closed:
            raise ConnectionClosedError(self.name)
        return database

    @property
    def schema(self) -> TableSchema | None:
        """Cached columns of the table (``None`` before first use)."""

        return self._schema.schema

    def _live_schema(self, conn: sqlite3.Connection) -> TableSchema:
        schema = self._schema.schema
        if not schema:
            schema = self._schema.introspect(conn)
        return schema

    def _allow_raw(self) -> bool:
        return not self.database.config.strict_conditions

    def _rows(self, conn: sqlite3.Connection, query: Query, declared: Mapping[str, str]) -> list[dict[str, Any]]:
        with Statement(conn, query.sql, query.params, declared_types=declared) as statement:
            return list(statement)

    def _after_migration(self, conn: sqlite3.Connection, added: list[str]) -> None:
        if added and _history.has_history(conn, self.name):
            _history.sync_history(conn, self.name)

    # ------------------------------------------------------------------ #
    # Schema                                                             #
    # ------------------------------------------------------------------ #
    def ensure_schema(self, record_type: type) -> list[str]:
        """Create the table or add the columns ``record_type`` declares.

        Returns the names of the columns created or added.
        """

        conn = self.database.conn
        added = self._schema.ensure_schema(conn, fields_of(record_type))
        self._after_migration(conn, added)
        return added

    # ------------------------------------------------------------------ #
    # Records                                                            #
    # ------------------------------------------------------------------ #
    def write(self, record: Any) -> int:
        """Insert ``record``, or update the row that has the same ``id``.

        The table and any missing columns are created first. Returns the row
        id, which is newly assigned when the record has no ``id`` value.
        """

        database = self.database
        conn = database.conn
        specs = fields_of_value(record)
        if not specs:
            raise ValueError(f"{type(record).__qualname__} has no persistable fields")

        added = self._schema.ensure_schema(conn, specs)
        self._after_migration(conn, added)
        database.notifier.watch(self.name)

        pairs = encode(record, specs, strict=database.config.strict_encoding)
        record_id = next((value for name, value in pairs if name == PRIMARY_KEY), None)
        if record_id is None:
            pairs = [(name, value) for name, value in pairs if name != PRIMARY_KEY]
        if not pairs:
            query = Query(f"INSERT INTO {quote_identifier(self.name)} DEFAULT VALUES")
        else:
            query = queries.upsert(self.name, pairs)

        with Statement(conn, query.sql, query.params) as statement:
            statement.execute()
            row_id = record_id if record_id is not None else statement.last_row_id
        log.debug("Wrote row %s to %s", row_id, self.name)
        return int(row_id)

    def read(
        self,
        record_type: type[T],
        where: Filter = None,
        limit: int | None = None,
    ) -> list[T]:
        """Decode the rows matching ``where`` (all rows when ``None``).

        ``where`` may be a :class:`~sqlrecord.storage.sqlite.queries.Condition`,
        a mapping of column equalities, or a raw SQL condition string. A table
        that does not exist yet reads as empty.
        """

        conn = self.database.conn
        schema = self._live_schema(conn)
        if not schema:
            log.debug("Read from missing table %s", self.name)
            return []
        query = queries.select(self.name, where, limit, allow_raw=self._allow_raw())
        rows = self._rows(conn, query, schema.declared_types())
        return [decode(row, record_type) for row in rows]

    def read_by_id(self, record_type: type[T], record_id: Any) -> T | None:
        found = self.read(record_type, Predicate(PRIMARY_KEY, "=", record_id), limit=1)
        return found[0] if found else None

    def delete(self, record_id: Any) -> int:
        """Delete the row with ``record_id``; missing ids are a no-op.

        Returns the number of rows removed.
        """

        database = self.database
        conn = database.conn
        if not self._live_schema(conn):
            return 0
        database.notifier.watch(self.name)
        query = queries.delete(self.name, record_id)
        with Statement(conn, query.sql, query.params) as statement:
            return statement.execute()

    def frame(
        self,
        where: Filter = None,
        limit: int | None = None,
        *,
        types: Mapping[str, ColumnType] | None = None,
    ) -> pd.DataFrame:
        """Rows of the table as a DataFrame with dtypes from the schema."""

        conn = self.database.conn
        schema = self._live_schema(conn)
        if not schema:
            log.debug("Frame from missing table %s", self.name)
            return pd.DataFrame()
        query = queries.select(self.name, where, limit, allow_raw=self._allow_raw())
        statement = Statement(conn, query.sql, query.params, declared_types=schema.declared_types())
        return read_frame(statement, types)

    # ------------------------------------------------------------------ #
    # History                                                            #
    # ------------------------------------------------------------------ #
    @property
    def history_enabled(self) -> bool:
        return _history.has_history(self.database.conn, self.name)

    def enable_history(self) -> None:
        """Record a timestamped snapshot of every inserted or updated row."""

        _history.enable_history(self.database.conn, self.name)

    def recall(
        self,
        record_type: type[T],
        as_of: datetime,
        where: Filter = None,
        limit: int | None = None,
    ) -> list[T]:
        """Snapshots recorded at or before ``as_of``, newest first.

        Naive ``as_of`` values are taken as UTC. Without history the result
        is empty.
        """

        conn = self.database.conn
        if not _history.has_history(conn, self.name):
            log.debug("Recall from %s without history", self.name)
            return []
        query = queries.recall(self.name, as_of, where, limit, allow_raw=self._allow_raw())
        declared = self._live_schema(conn).declared_types()
        declared[queries.TIMESTAMP_COLUMN] = "TEXT"
        rows = self._rows(conn, query, declared)
        return [decode(row, record_type) for row in rows]
