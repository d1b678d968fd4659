# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Record storage on SQLite."""

from sqlrecord.storage.database import Database, open_database
from sqlrecord.storage.errors import (
    ColumnOutOfBounds,
    ConnectionClosedError,
    DecodeError,
    EngineError,
    SQLRecordError,
    UnsupportedValueEncoding,
)
from sqlrecord.storage.table import Table

__all__ = [
    "Database",
    "open_database",
    "Table",
    "SQLRecordError",
    "EngineError",
    "ConnectionClosedError",
    "ColumnOutOfBounds",
    "UnsupportedValueEncoding",
    "DecodeError",
]
