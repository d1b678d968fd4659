# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Prepared statement handle stepped row by row."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from typing import Any

from sqlrecord.storage.errors import ColumnOutOfBounds, EngineError
from sqlrecord.storage.sqlite.affinity import (
    StorageAffinity,
    affinity_from_declaration,
    affinity_of_value,
)
from sqlrecord.storage.sqlite.schema import Column
from sqlrecord.storage.sqlite.utils import engine_call

log = logging.getLogger(__name__)

__all__ = ["Statement"]


class Statement:
    """A statement with bound parameters over a :class:`sqlite3.Cursor`.

    The statement runs on the first :meth:`step`; :meth:`reset` rewinds it so
    the next step runs it again. :meth:`finalize` releases the cursor and must
    be called on every exit path, which the context manager does.

    ``declared_types`` maps column names to declared SQL types. The standard
    ``sqlite3`` module does not report them, so callers that know the table
    schema pass it in; otherwise the affinity comes from the current value.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: Sequence[Any] | Mapping[str, Any] = (),
        *,
        declared_types: Mapping[str, str] | None = None,
    ) -> None:
        self.sql = sql
        self.params = params
        self.declared_types = dict(declared_types or {})
        self._conn = conn
        self._cursor: sqlite3.Cursor | None = None
        self._row: tuple[Any, ...] | None = None
        self._names: list[str] = []
        self._finalized = False

    # ------------------------------------------------------------------ #
    # Stepping                                                           #
    # ------------------------------------------------------------------ #
    def _start(self) -> sqlite3.Cursor:
        if self._finalized:
            raise EngineError(None, "statement has been finalized", "statement.step")
        with engine_call("statement.step"):
            cursor = self._conn.execute(self.sql, self.params)
        self._cursor = cursor
        self._names = [desc[0] for desc in cursor.description or ()]
        return cursor

    def step(self) -> bool:
        """Advance to the next row; ``False`` once the statement is done."""

        cursor = self._cursor if self._cursor is not None else self._start()
        with engine_call("statement.step"):
            self._row = cursor.fetchone()
        return self._row is not None

    def execute(self) -> int:
        """Run the statement to completion; returns the affected row count."""

        cursor = self._cursor if self._cursor is not None else self._start()
        with engine_call("statement.execute"):
            cursor.fetchall()
        self._row = None
        return cursor.rowcount

    def reset(self) -> None:
        if self._cursor is not None:
            self._cursor.close()
        self._cursor = None
        self._row = None

    def finalize(self) -> None:
        if self._finalized:
            return
        self.reset()
        self._finalized = True

    close = finalize

    @property
    def last_row_id(self) -> int | None:
        return self._cursor.lastrowid if self._cursor is not None else None

    def __enter__(self) -> Statement:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.finalize()

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while self.step():
            yield self.row

    # ------------------------------------------------------------------ #
    # Column access                                                      #
    # ------------------------------------------------------------------ #
    def _described(self) -> list[str]:
        if not self._names and self._cursor is None and not self._finalized:
            self._start()
        return self._names

    @property
    def column_count(self) -> int:
        return len(self._described())

    def _check(self, index: int) -> None:
        count = self.column_count
        if not 0 <= index < count:
            raise ColumnOutOfBounds(index, count)

    def column_name(self, index: int) -> str:
        self._check(index)
        return self._names[index]

    def column_declared_type(self, index: int) -> str | None:
        return self.declared_types.get(self.column_name(index))

    def column_affinity(self, index: int) -> StorageAffinity:
        declared = self.column_declared_type(index)
        if declared is not None:
            return affinity_from_declaration(declared)
        if self._row is not None:
            return affinity_of_value(self._row[index])
        return StorageAffinity.NULL

    def column_value(self, index: int) -> Any:
        """Raw value of column ``index`` in the current row."""

        self._check(index)
        if self._row is None:
            return None
        return self._row[index]

    def columns(self) -> list[Column]:
        return [
            Column(self.column_name(index), self.column_affinity(index))
            for index in range(self.column_count)
        ]

    @property
    def row(self) -> dict[str, Any]:
        """The current row as ``column -> raw value``."""

        if self._row is None:
            return {}
        return dict(zip(self._names, self._row))
