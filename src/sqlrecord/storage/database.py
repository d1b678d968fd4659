# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Connection wrapper for record storage.

A :class:`Database` owns one ``sqlite3`` connection together with everything
scoped to it: the connection-wide :class:`ConnectionState`, the change
notifier, the authorizer and the cache of :class:`~sqlrecord.storage.table.Table`
handles. A connection must be used from one thread at a time.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

import pandas as pd

from sqlrecord.core.config import DatabaseConfig
from sqlrecord.storage.errors import ConnectionClosedError
from sqlrecord.storage.sqlite import functions as _functions
from sqlrecord.storage.sqlite.authorizer import StatementAuthorizer
from sqlrecord.storage.sqlite.events import ChangeNotifier, ConnectionState, HookBox
from sqlrecord.storage.sqlite.frames import ColumnType, read_frame, write_frame
from sqlrecord.storage.sqlite.schema import list_tables
from sqlrecord.storage.sqlite.statement import Statement
from sqlrecord.storage.sqlite.utils import engine_call, open_db, transaction
from sqlrecord.storage.table import Table

log = logging.getLogger(__name__)

__all__ = ["Database", "open_database"]

T = TypeVar("T")

MEMORY = ":memory:"


class Database:
    """An open SQLite database with record-level table handles."""

    def __init__(
        self,
        path: str | os.PathLike[str] = MEMORY,
        *,
        config: DatabaseConfig | None = None,
        mode: str = "rwc",
    ) -> None:
        self.path = os.fspath(path)
        self.config = config or DatabaseConfig()
        in_memory = self.path in (MEMORY, "")
        self._conn: sqlite3.Connection | None = open_db(
            self.path,
            mode=mode,
            apply_pragmas=True,
            pragmas=self.config.pragmas(in_memory=in_memory),
        )
        self.state = ConnectionState()
        self.notifier = ChangeNotifier(self._conn, self.state)
        self._authorizer: StatementAuthorizer | None = None
        self._tables: dict[str, Table] = {}
        log.info("Opened database %s", self.path)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                          #
    # ------------------------------------------------------------------ #
    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise ConnectionClosedError()
        return self._conn

    @property
    def closed(self) -> bool:
        return self._conn is None

    @property
    def last_modified(self) -> datetime | None:
        return self.state.last_modified

    def close(self) -> None:
        """Release the change hook and authorizer, then close the connection."""

        conn = self._conn
        if conn is None:
            return
        try:
            self.notifier.unregister()
            if self._authorizer is not None:
                StatementAuthorizer.unregister(conn)
                self._authorizer = None
        finally:
            self._tables.clear()
            self._conn = None
            conn.close()
        log.info("Closed database %s", self.path)

    def __enter__(self) -> Database:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        status = "closed" if self.closed else "open"
        return f"<Database {self.path!r} ({status})>"

    # ------------------------------------------------------------------ #
    # Statements                                                         #
    # ------------------------------------------------------------------ #
    def prepare(
        self,
        sql: str,
        params: Sequence[Any] | Mapping[str, Any] = (),
        *,
        declared_types: Mapping[str, str] | None = None,
    ) -> Statement:
        return Statement(self.conn, sql, params, declared_types=declared_types)

    def execute(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> int:
        """Run one statement to completion; returns the affected row count."""

        with self.prepare(sql, params) as statement:
            count = statement.execute()
        if self.notifier.registered:
            # Raw SQL may have created tables the hook should report.
            self.notifier.sync()
        return count

    def read(
        self,
        sql: str,
        call: Callable[[Statement], T],
        params: Sequence[Any] | Mapping[str, Any] = (),
    ) -> list[T]:
        """Step ``sql`` inside a read transaction, calling ``call`` per row.

        The transaction is always rolled back. Inside an open transaction
        the statement simply joins it.
        """

        conn = self.conn
        own_transaction = not conn.in_transaction
        if own_transaction:
            with engine_call("read"):
                conn.execute("BEGIN DEFERRED")
        try:
            results = []
            with self.prepare(sql, params) as statement:
                while statement.step():
                    results.append(call(statement))
            return results
        finally:
            if own_transaction:
                conn.execute("ROLLBACK")

    @contextmanager
    def transaction(self, begin: str = "BEGIN IMMEDIATE") -> Iterator[sqlite3.Connection]:
        with transaction(self.conn, begin=begin) as conn:
            yield conn

    # ------------------------------------------------------------------ #
    # Tables                                                             #
    # ------------------------------------------------------------------ #
    def table(self, name: str) -> Table:
        """The cached handle for ``name`` (created on first use)."""

        if not name:
            raise ValueError("Table name must be a non-empty string")
        if self.closed:
            raise ConnectionClosedError(name)
        handle = self._tables.get(name)
        if handle is None:
            handle = self._tables[name] = Table(self, name)
            log.debug("Created table handle %s", name)
        return handle

    def list_tables(self) -> list[str]:
        return list_tables(self.conn)

    # ------------------------------------------------------------------ #
    # Change notification                                                #
    # ------------------------------------------------------------------ #
    def set_update_hook(
        self,
        hook: HookBox | Callable[..., None] | None = None,
    ) -> HookBox | None:
        """Register the row-change callback; returns the (released) previous box.

        ``None`` installs :meth:`HookBox.standard`, which only keeps
        :attr:`last_modified` current. Plain callables are boxed with the
        configured ``verbose_changes``.
        """

        if hook is None:
            box = HookBox.standard()
            box.verbose = self.config.verbose_changes
        elif isinstance(hook, HookBox):
            box = hook
        else:
            box = HookBox(hook, verbose=self.config.verbose_changes)
        return self.notifier.register(box)

    def remove_update_hook(self) -> HookBox | None:
        return self.notifier.unregister()

    def set_authorizer(self, authorizer: StatementAuthorizer | None) -> None:
        conn = self.conn
        if authorizer is None:
            StatementAuthorizer.unregister(conn)
        else:
            authorizer.register(conn)
        self._authorizer = authorizer

    # ------------------------------------------------------------------ #
    # SQL functions                                                      #
    # ------------------------------------------------------------------ #
    def add_function(self, name: str, fn: Callable[..., Any], arity: int = -1, *, deterministic: bool = True) -> None:
        _functions.add_function(self.conn, name, fn, arity, deterministic=deterministic)

    def add_aggregate_function(self, name: str, aggregate: type, arity: int = -1) -> None:
        _functions.add_aggregate_function(self.conn, name, aggregate, arity)

    def add_window_function(self, name: str, window: type, arity: int = -1) -> None:
        _functions.add_window_function(self.conn, name, window, arity)

    def remove_function(self, name: str, arity: int = -1) -> None:
        _functions.remove_function(self.conn, name, arity)

    # ------------------------------------------------------------------ #
    # DataFrames                                                         #
    # ------------------------------------------------------------------ #
    def frame(
        self,
        sql: str,
        params: Sequence[Any] | Mapping[str, Any] = (),
        *,
        types: Mapping[str, ColumnType] | None = None,
    ) -> pd.DataFrame:
        return read_frame(self.prepare(sql, params), types)

    def write_frame(self, frame: pd.DataFrame, table: str, *, create_table: bool = False) -> int:
        count = write_frame(frame, self.conn, table, create_table=create_table)
        if self.notifier.registered:
            self.notifier.sync()
        return count


def open_database(path: str | os.PathLike[str] = MEMORY, **options) -> Database:
    """Open ``path`` with a config read from the environment.

    ``options`` override individual :class:`DatabaseConfig` fields.
    """

    return Database(path, config=DatabaseConfig.from_env(**options))
