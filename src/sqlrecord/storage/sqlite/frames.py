# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
pandas bridge over :class:`~sqlrecord.storage.sqlite.statement.Statement`.

``read_frame`` steps a statement into a DataFrame whose dtypes follow the
declared (or requested) column types. ``write_frame`` inserts the rows of a
DataFrame positionally, optionally creating the table from the frame dtypes.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

import numpy as np
import pandas as pd

from sqlrecord.storage.errors import UnsupportedValueEncoding
from sqlrecord.storage.sqlite.affinity import StorageAffinity, affinity_from_declaration, affinity_of_value
from sqlrecord.storage.sqlite.codec import encode_value
from sqlrecord.storage.sqlite.statement import Statement
from sqlrecord.storage.sqlite.utils import engine_call, quote_identifier, transaction

log = logging.getLogger(__name__)

__all__ = ["read_frame", "write_frame", "parse_sql_datetime", "sql_type_for"]

SQL_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
_UNIX_EPOCH_JULIAN_DAY = 2440587.5

_DTYPES = {
    StorageAffinity.PRIMARY_KEY_INTEGER: "Int64",
    StorageAffinity.INTEGER: "Int64",
    StorageAffinity.FLOAT: "float64",
    StorageAffinity.TEXT: "string",
}

ColumnType = StorageAffinity | type | str


# ---- Dates ------------------------------------------------------------------


def parse_sql_datetime(value: Any) -> datetime | None:
    """Interpret a stored date the ways SQLite's date functions do.

    TEXT is ISO-8601 (``YYYY-MM-DD HH:MM:SS`` included), INTEGER is Unix
    seconds and FLOAT is a Julian day number. Results are naive UTC;
    anything unparseable yields ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.strip())
        except ValueError:
            log.debug("Unparseable SQL datetime %r", value)
            return None
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
        return moment
    epoch = datetime(1970, 1, 1)
    try:
        if isinstance(value, (int, np.integer)):
            return epoch + timedelta(seconds=int(value))
        if isinstance(value, (float, np.floating)):
            return epoch + timedelta(days=float(value) - _UNIX_EPOCH_JULIAN_DAY)
    except OverflowError:
        log.debug("SQL datetime %r out of range", value)
    return None


# ---- Reading ----------------------------------------------------------------


def _requested_kind(requested: ColumnType | None, declared: str | None) -> Any:
    if requested is None:
        return affinity_from_declaration(declared) if declared is not None else None
    if isinstance(requested, StorageAffinity):
        return requested
    if isinstance(requested, str):
        return affinity_from_declaration(requested)
    return requested


def _series(name: str, values: list[Any], kind: Any) -> pd.Series:
    if kind is None:
        sample = next((value for value in values if value is not None), None)
        kind = affinity_of_value(sample)

    if kind is datetime or kind is date:
        parsed = [parse_sql_datetime(value) for value in values]
        return pd.Series(pd.to_datetime(parsed), name=name)
    if kind is bool:
        return pd.Series([None if v is None else bool(v) for v in values], name=name, dtype="boolean")
    if isinstance(kind, type):
        kind = {int: StorageAffinity.INTEGER, float: StorageAffinity.FLOAT, str: StorageAffinity.TEXT}.get(
            kind, StorageAffinity.BLOB
        )

    dtype = _DTYPES.get(kind)
    if dtype is None:
        return pd.Series(values, name=name, dtype=object)
    try:
        if dtype == "string":
            values = [v.decode() if isinstance(v, bytes) else v for v in values]
            values = [v if v is None or isinstance(v, str) else str(v) for v in values]
        return pd.Series(values, name=name, dtype=dtype)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        # Dynamic typing lets a column hold values outside its affinity.
        log.debug("Column %s kept as object: %s", name, exc)
        return pd.Series(values, name=name, dtype=object)


def read_frame(statement: Statement, types: Mapping[str, ColumnType] | None = None) -> pd.DataFrame:
    """Step ``statement`` to completion and return its rows as a DataFrame.

    ``types`` overrides the declared type of selected columns; entries may be
    a :class:`StorageAffinity`, a declared type string or one of ``int``,
    ``float``, ``str``, ``bytes``, ``bool``, ``datetime``. Names missing from
    the result are ignored. The statement is finalized afterwards.
    """

    requested = dict(types or {})
    with statement:
        names = [statement.column_name(index) for index in range(statement.column_count)]
        columns: list[list[Any]] = [[] for _ in names]
        while statement.step():
            for index, bucket in enumerate(columns):
                bucket.append(statement.column_value(index))
        declared = [statement.column_declared_type(index) for index in range(len(names))]

    series = [
        _series(name, values, _requested_kind(requested.get(name), decl))
        for name, values, decl in zip(names, columns, declared)
    ]
    if not series:
        return pd.DataFrame()
    frame = pd.concat(series, axis=1)
    frame.columns = names
    log.debug("Read frame with %d rows and columns %s", len(frame.index), names)
    return frame


# ---- Writing ----------------------------------------------------------------


def sql_type_for(series: pd.Series) -> str | None:
    """Declared type used when ``write_frame`` creates a table."""

    dtype = series.dtype
    if pd.api.types.is_bool_dtype(dtype):
        return "BOOLEAN"
    if pd.api.types.is_integer_dtype(dtype):
        return "INT"
    if pd.api.types.is_float_dtype(dtype):
        return "FLOAT" if dtype == np.float32 else "DOUBLE"
    if pd.api.types.is_datetime64_any_dtype(dtype):
        return "DATE"
    if pd.api.types.is_string_dtype(dtype):
        present = series.dropna()
        if present.map(lambda v: isinstance(v, (bytes, bytearray))).all() and not present.empty:
            return "BLOB"
        if present.map(lambda v: isinstance(v, str)).all():
            return "TEXT"
    return None


def _sql_value(item: Any) -> Any:
    if pd.api.types.is_scalar(item) and pd.isna(item):
        return None
    if isinstance(item, (pd.Timestamp, datetime)):
        return item.strftime(SQL_DATETIME_FORMAT)
    if isinstance(item, date):
        return item.isoformat()
    try:
        return encode_value(item, strict=True)
    except UnsupportedValueEncoding:
        return str(item)


def write_frame(
    frame: pd.DataFrame,
    conn: sqlite3.Connection,
    table: str,
    *,
    create_table: bool = False,
) -> int:
    """Insert every row of ``frame`` into ``table``; returns the row count.

    Values bind positionally in frame column order. With ``create_table`` the
    table is created first (if missing) from the frame's column dtypes.
    """

    quoted = quote_identifier(table)
    if create_table:
        definitions = []
        for name in frame.columns:
            sql_type = sql_type_for(frame[name])
            column = quote_identifier(str(name))
            definitions.append(f"{column} {sql_type}" if sql_type else column)
        with engine_call("write_frame"):
            conn.execute(f"CREATE TABLE IF NOT EXISTS {quoted} ({', '.join(definitions)})")

    if frame.empty:
        return 0
    marks = ", ".join("?" for _ in frame.columns)
    rows = [tuple(_sql_value(item) for item in row) for row in frame.itertuples(index=False, name=None)]
    with engine_call("write_frame"), transaction(conn):
        conn.executemany(f"INSERT INTO {quoted} VALUES ({marks})", rows)
    log.info("Wrote %d rows to %s", len(rows), table)
    return len(rows)
