# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Error kinds raised by the record mapping layer."""

from __future__ import annotations

__all__ = [
    "SQLRecordError",
    "EngineError",
    "ConnectionClosedError",
    "ColumnOutOfBounds",
    "UnsupportedValueEncoding",
    "DecodeError",
]


class SQLRecordError(Exception):
    """Base class for every error raised by :mod:`sqlrecord`."""


class EngineError(SQLRecordError):
    """A non-success status reported by the SQLite engine."""

    def __init__(self, code: int | None, message: str, call_site: str | None = None):
        self.code = code
        self.message = message
        self.call_site = call_site
        where = f" at {call_site}" if call_site else ""
        label = f"[{code}] " if code is not None else ""
        super().__init__(f"{label}{message}{where}")


class ConnectionClosedError(SQLRecordError):
    """Raised when a table handle outlives the database it was created from."""

    def __init__(self, table: str | None = None):
        self.table = table
        target = f" (table {table!r})" if table else ""
        super().__init__(f"Database connection is closed{target}")


class ColumnOutOfBounds(SQLRecordError, IndexError):
    """A column index beyond the statement's column count was requested."""

    def __init__(self, index: int, count: int):
        self.index = index
        self.count = count
        super().__init__(f"Column index {index} out of bounds for {count} column(s)")


class UnsupportedValueEncoding(SQLRecordError, TypeError):
    """A value has no storage affinity and no serializable fallback."""

    def __init__(self, column: str | None, value_type: type, reason: str | None = None):
        self.column = column
        self.value_type = value_type
        self.reason = reason
        name = getattr(value_type, "__qualname__", repr(value_type))
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cannot encode {name} for column {column!r}{detail}")


class DecodeError(SQLRecordError, ValueError):
    """A row does not match the shape the target record type expects."""

    def __init__(self, column: str | None, reason: str):
        self.column = column
        self.reason = reason
        super().__init__(f"Cannot decode column {column!r}: {reason}")
