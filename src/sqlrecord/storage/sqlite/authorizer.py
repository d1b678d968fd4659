# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Statement authorizer.

The engine consults the authorizer while compiling every statement. The
default implementation allows every action; subclasses override
:meth:`StatementAuthorizer.authorize` to veto or ignore specific actions.
"""

from __future__ import annotations

import logging
import sqlite3

log = logging.getLogger(__name__)

__all__ = ["StatementAuthorizer", "SCHEMA_ACTIONS", "TEMP_ACTIONS", "DATA_ACTIONS"]

SCHEMA_ACTIONS = frozenset(
    {
        sqlite3.SQLITE_DROP_TABLE,
        sqlite3.SQLITE_DROP_VTABLE,
        sqlite3.SQLITE_DROP_INDEX,
        sqlite3.SQLITE_DROP_VIEW,
        sqlite3.SQLITE_DROP_TRIGGER,
        sqlite3.SQLITE_ALTER_TABLE,
        sqlite3.SQLITE_ATTACH,
        sqlite3.SQLITE_DETACH,
        sqlite3.SQLITE_CREATE_INDEX,
        sqlite3.SQLITE_CREATE_TABLE,
        sqlite3.SQLITE_CREATE_TRIGGER,
        sqlite3.SQLITE_CREATE_VIEW,
        sqlite3.SQLITE_CREATE_VTABLE,
    }
)

TEMP_ACTIONS = frozenset(
    {
        sqlite3.SQLITE_DROP_TEMP_INDEX,
        sqlite3.SQLITE_DROP_TEMP_TRIGGER,
        sqlite3.SQLITE_DROP_TEMP_VIEW,
        sqlite3.SQLITE_DROP_TEMP_TABLE,
        sqlite3.SQLITE_CREATE_TEMP_INDEX,
        sqlite3.SQLITE_CREATE_TEMP_TABLE,
        sqlite3.SQLITE_CREATE_TEMP_TRIGGER,
        sqlite3.SQLITE_CREATE_TEMP_VIEW,
    }
)

DATA_ACTIONS = frozenset(
    {
        sqlite3.SQLITE_READ,
        sqlite3.SQLITE_INSERT,
        sqlite3.SQLITE_DELETE,
        sqlite3.SQLITE_UPDATE,
    }
)

_SCHEMA_TABLES = frozenset({"sqlite_master", "sqlite_temp_master", "sqlite_schema", "sqlite_temp_schema"})


class StatementAuthorizer:
    """Default-allow authorizer registered with ``Connection.set_authorizer``."""

    def __call__(
        self,
        action: int,
        arg1: str | None,
        arg2: str | None,
        database: str | None,
        source: str | None,
    ) -> int:
        if action in SCHEMA_ACTIONS or action in TEMP_ACTIONS:
            return self.authorize_schema(action, arg1, arg2, database, source)
        if action == sqlite3.SQLITE_DELETE and arg1 in _SCHEMA_TABLES:
            # Schema-table deletions are never reported to update hooks.
            return sqlite3.SQLITE_OK
        return self.authorize(action, arg1, arg2, database, source)

    def authorize_schema(
        self,
        action: int,
        arg1: str | None,
        arg2: str | None,
        database: str | None,
        source: str | None,
    ) -> int:
        return self.authorize(action, arg1, arg2, database, source)

    def authorize(
        self,
        action: int,
        arg1: str | None,
        arg2: str | None,
        database: str | None,
        source: str | None,
    ) -> int:
        return sqlite3.SQLITE_OK

    def register(self, conn: sqlite3.Connection) -> None:
        conn.set_authorizer(self)
        log.debug("Registered %s", type(self).__name__)

    @staticmethod
    def unregister(conn: sqlite3.Connection) -> None:
        conn.set_authorizer(None)
