# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Utility helpers for the SQLite engine.

Connection helpers, pragmas, cursor/transaction context managers, engine error
translation and identifier quoting.
"""

from __future__ import annotations

import re
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any, cast

from sqlrecord.storage.errors import EngineError

__all__ = [
    "open_db",
    "set_pragmas",
    "transaction",
    "engine_call",
    "quote_identifier",
    "SQLITE_KEYWORDS",
]


# ---- Connections ------------------------------------------------------------


def open_db(
    path: str,
    *,
    mode: str = "rwc",
    apply_pragmas: bool = False,
    pragmas: Mapping[str, object] | None = None,
) -> sqlite3.Connection:
    """
    Open a SQLite database with predictable defaults.

    mode: "ro" (read-only), "rw", "rwc" (create if needed). Default: "rwc".
    The connection runs in autocommit mode so each write is committed as soon
    as its statement completes.
    """
    with engine_call("open_db"):
        if path == ":memory:":
            conn = sqlite3.connect(":memory:", isolation_level=None)
        else:
            uri = f"file:{path}?mode={mode}"
            conn = sqlite3.connect(uri, uri=True, isolation_level=None)
    if apply_pragmas:
        set_pragmas(conn, pragmas or {})
    return conn


def _to_int(value: object) -> int:
    """Best-effort conversion to ``int`` for pragmatic pragmas."""

    return int(cast(Any, value))


def set_pragmas(conn: sqlite3.Connection, opts: Mapping[str, object]) -> None:
    """Apply selected pragmas.

    Only keys present in ``opts`` are applied. Supported keys include
    ``foreign_keys``, ``journal_mode``, ``synchronous``, ``temp_store``,
    ``cache_size``, and ``busy_timeout_ms``.
    """

    norm = {str(key).lower(): value for key, value in opts.items()}
    with engine_call("set_pragmas"):
        for key, value in norm.items():
            if key == "foreign_keys":
                conn.execute(f"PRAGMA foreign_keys={'ON' if value else 'OFF'}")
            elif key == "journal_mode":
                conn.execute(f"PRAGMA journal_mode={value}")
            elif key == "synchronous":
                conn.execute(f"PRAGMA synchronous={value}")
            elif key == "temp_store":
                conn.execute(f"PRAGMA temp_store={value}")
            elif key == "cache_size":
                conn.execute(f"PRAGMA cache_size={_to_int(value)}")
            elif key == "busy_timeout_ms":
                conn.execute(f"PRAGMA busy_timeout={_to_int(value)}")


# ---- Transactions -----------------------------------------------------------


@contextmanager
def transaction(
    conn: sqlite3.Connection,
    *,
    begin: str = "BEGIN IMMEDIATE",
) -> Iterator[sqlite3.Connection]:
    """
    Transaction wrapper that commits on success and rolls back on error.
    Uses BEGIN IMMEDIATE by default to reduce write contention.
    """

    with engine_call("transaction"):
        conn.execute(begin)
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    with engine_call("transaction"):
        conn.execute("COMMIT")


# ---- Errors -----------------------------------------------------------------


@contextmanager
def engine_call(call_site: str) -> Iterator[None]:
    """Translate any :class:`sqlite3.Error` raised inside the block.

    The engine's result code is preserved when the interpreter exposes it
    (``sqlite_errorcode``); ``call_site`` names the operation that failed.
    """

    try:
        yield
    except EngineError:
        raise
    except sqlite3.Error as exc:
        code = getattr(exc, "sqlite_errorcode", None)
        raise EngineError(code, str(exc), call_site) from exc


# ---- Identifiers ------------------------------------------------------------

SQLITE_KEYWORDS: frozenset[str] = frozenset(
    """
    ABORT ACTION ADD AFTER ALL ALTER ALWAYS ANALYZE AND AS ASC ATTACH AUTOINCREMENT
    BEFORE BEGIN BETWEEN BY CASCADE CASE CAST CHECK COLLATE COLUMN COMMIT CONFLICT
    CONSTRAINT CREATE CROSS CURRENT CURRENT_DATE CURRENT_TIME CURRENT_TIMESTAMP
    DATABASE DEFAULT DEFERRABLE DEFERRED DELETE DESC DETACH DISTINCT DO DROP EACH
    ELSE END ESCAPE EXCEPT EXCLUDE EXCLUSIVE EXISTS EXPLAIN FAIL FILTER FIRST
    FOLLOWING FOR FOREIGN FROM FULL GENERATED GLOB GROUP GROUPS HAVING IF IGNORE
    IMMEDIATE IN INDEX INDEXED INITIALLY INNER INSERT INSTEAD INTERSECT INTO IS
    ISNULL JOIN KEY LAST LEFT LIKE LIMIT MATCH MATERIALIZED NATURAL NO NOT NOTHING
    NOTNULL NULL NULLS OF OFFSET ON OR ORDER OTHERS OUTER OVER PARTITION PLAN
    PRAGMA PRECEDING PRIMARY QUERY RAISE RANGE RECURSIVE REFERENCES REGEXP REINDEX
    RELEASE RENAME REPLACE RESTRICT RETURNING RIGHT ROLLBACK ROW ROWS SAVEPOINT
    SELECT SET TABLE TEMP TEMPORARY THEN TIES TO TRANSACTION TRIGGER UNBOUNDED
    UNION UNIQUE UPDATE USING VACUUM VALUES VIEW VIRTUAL WHEN WHERE WINDOW WITH
    WITHOUT
    """.split()
)

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Return ``name`` ready for SQL text, quoting keywords and odd names."""

    if _PLAIN_IDENTIFIER.match(name) and name.upper() not in SQLITE_KEYWORDS:
        return name
    escaped = name.replace('"', '""')
    return f'"{escaped}"'
