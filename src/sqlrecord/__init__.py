# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""Public package interface for sqlrecord."""

from sqlrecord.core.config import DatabaseConfig
from sqlrecord.storage.database import Database, open_database
from sqlrecord.storage.errors import (
    ColumnOutOfBounds,
    ConnectionClosedError,
    DecodeError,
    EngineError,
    SQLRecordError,
    UnsupportedValueEncoding,
)
from sqlrecord.storage.sqlite.affinity import StorageAffinity, register_adapter
from sqlrecord.storage.sqlite.authorizer import StatementAuthorizer
from sqlrecord.storage.sqlite.events import ChangeKind, HookBox, RowChange
from sqlrecord.storage.sqlite.queries import And, Condition, Or, Predicate, Raw
from sqlrecord.storage.sqlite.reflect import TRANSIENT, FieldSpec, register_record
from sqlrecord.storage.table import Table

__version__ = "0.3.0"

__all__ = [
    "Database",
    "DatabaseConfig",
    "open_database",
    "Table",
    "StorageAffinity",
    "register_adapter",
    "FieldSpec",
    "register_record",
    "TRANSIENT",
    "Condition",
    "Predicate",
    "And",
    "Or",
    "Raw",
    "ChangeKind",
    "HookBox",
    "RowChange",
    "StatementAuthorizer",
    "SQLRecordError",
    "EngineError",
    "ConnectionClosedError",
    "ColumnOutOfBounds",
    "UnsupportedValueEncoding",
    "DecodeError",
    "__version__",
]
