# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Row-change notification.

The standard ``sqlite3`` module has no update hook, so the notifier registers
a SQL function on the connection and installs TEMP ``AFTER`` triggers on each
watched table that call it with the row id and the change kind. TEMP triggers
live only as long as the connection and are invisible to other connections.

Set ``verbose`` on a :class:`HookBox` to receive the database and table names;
non-verbose triggers do not pass them at all. Whichever box is registered, the
connection's ``last_modified`` timestamp is updated on every change.
"""

from __future__ import annotations

import enum
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlrecord.storage.sqlite.schema import list_tables
from sqlrecord.storage.sqlite.utils import engine_call, quote_identifier

log = logging.getLogger(__name__)

__all__ = [
    "ChangeKind",
    "RowChange",
    "HookBox",
    "ConnectionState",
    "NotifierState",
    "ChangeNotifier",
]

CHANGE_FUNCTION = "sqlrecord_row_changed"


class ChangeKind(enum.IntEnum):
    """Kinds of row change; values are the engine's action codes."""

    UNKNOWN = 0
    DELETE = sqlite3.SQLITE_DELETE
    INSERT = sqlite3.SQLITE_INSERT
    UPDATE = sqlite3.SQLITE_UPDATE

    @classmethod
    def from_code(cls, code: int) -> ChangeKind:
        try:
            return cls(code)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class RowChange:
    """One reported change, for callbacks that collect what they receive."""

    rowid: int
    kind: ChangeKind
    database: str | None = None
    table: str | None = None


Callback = Callable[[int, ChangeKind, "str | None", "str | None"], None]


class HookBox:
    """Holds the callback a connection invokes for each row change."""

    def __init__(self, callback: Callback, *, verbose: bool = False) -> None:
        self.callback = callback
        self.verbose = verbose
        self.released = False

    def __call__(
        self,
        rowid: int,
        code: int,
        database: str | None = None,
        table: str | None = None,
    ) -> None:
        if self.released:
            return
        kind = ChangeKind.from_code(code)
        if self.verbose:
            self.callback(rowid, kind, database, table)
        else:
            self.callback(rowid, kind, None, None)

    def release(self) -> None:
        """Drop the retained callback. Must happen exactly once."""

        if self.released:
            raise RuntimeError("HookBox released twice")
        self.released = True
        log.debug("Released update hook %r", self)

    # Presets ------------------------------------------------------------
    @classmethod
    def standard(cls) -> HookBox:
        """Only keeps ``last_modified`` current."""

        return cls(lambda _rowid, _kind, _db, _table: None)

    @classmethod
    def abbreviated(cls) -> HookBox:
        return cls(lambda rowid, kind, _db, _table: log.info("row %s %s", rowid, kind.name))

    @classmethod
    def debug(cls) -> HookBox:
        return cls(
            lambda rowid, kind, db, table: log.debug(
                "row %s %s %s.%s", rowid, kind.name, db or "main", table or "<table>"
            ),
            verbose=True,
        )


class ConnectionState:
    """Connection-wide change signal."""

    def __init__(self) -> None:
        self.last_modified: datetime | None = None

    def touch(self) -> datetime:
        now = datetime.now(timezone.utc)
        previous = self.last_modified
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        self.last_modified = now
        return now


class NotifierState(enum.Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"


_TRIGGER_EVENTS = (
    ("insert", "INSERT", "NEW", ChangeKind.INSERT),
    ("update", "UPDATE", "NEW", ChangeKind.UPDATE),
    ("delete", "DELETE", "OLD", ChangeKind.DELETE),
)


def _sql_literal(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


class ChangeNotifier:
    """Per-connection registry for the update hook.

    Transitions: ``UNREGISTERED -> register() -> REGISTERED -> unregister()
    -> UNREGISTERED``. Registering again while registered replaces the box and
    releases the previous one.
    """

    def __init__(self, conn: sqlite3.Connection, state: ConnectionState) -> None:
        self._conn = conn
        self._state_ref = state
        self._hook: HookBox | None = None
        self._watched: list[str] = []
        self._installed: dict[str, bool] = {}
        self.state = NotifierState.UNREGISTERED

    @property
    def hook(self) -> HookBox | None:
        return self._hook

    @property
    def registered(self) -> bool:
        return self.state is NotifierState.REGISTERED

    def register(self, hook: HookBox) -> HookBox | None:
        """Install ``hook``; returns the box it replaced (already released)."""

        if hook.released:
            raise ValueError("Cannot register a released HookBox")
        previous = self._hook
        if previous is hook:
            return None
        self._hook = hook
        if previous is not None:
            previous.release()

        if self.state is NotifierState.UNREGISTERED:
            with engine_call("register_update_hook"):
                self._conn.create_function(CHANGE_FUNCTION, -1, self._dispatch)
            self.state = NotifierState.REGISTERED
            self.sync()
        else:
            for table, verbose in list(self._installed.items()):
                if verbose != hook.verbose:
                    self._install(table)
        log.debug("Registered update hook (verbose=%s)", hook.verbose)
        return previous

    def unregister(self) -> HookBox | None:
        """Remove the hook and its triggers; returns the released box."""

        if self.state is NotifierState.UNREGISTERED:
            return None
        previous = self._hook
        self._hook = None
        self.state = NotifierState.UNREGISTERED
        try:
            for table in list(self._installed):
                self._drop(table)
            with engine_call("unregister_update_hook"):
                self._conn.create_function(CHANGE_FUNCTION, -1, None)
        finally:
            if previous is not None:
                previous.release()
        log.debug("Unregistered update hook")
        return previous

    def watch(self, table: str) -> None:
        """Report changes to ``table`` whenever a hook is registered."""

        if table not in self._watched:
            self._watched.append(table)
        if self.registered and table not in self._installed:
            self._install(table)

    def sync(self) -> None:
        """Watch every rowid table currently in the main database."""

        live = list_tables(self._conn)
        # Dropping a table drops its triggers too.
        for table in [name for name in self._installed if name not in live]:
            self.forget(table)
        for table in live:
            if table not in self._installed and self._has_rowid(table):
                self.watch(table)
        if self.registered:
            for table in self._watched:
                if table not in self._installed:
                    self._install(table)

    def forget(self, table: str) -> None:
        """Drop cached trigger state for a table that was dropped or rebuilt."""

        self._installed.pop(table, None)

    # ------------------------------------------------------------------ #
    # Internals                                                          #
    # ------------------------------------------------------------------ #
    def _dispatch(self, rowid: int, code: int, database: str | None = None, table: str | None = None):
        self._state_ref.touch()
        hook = self._hook
        if hook is not None:
            # Raising here would abort the statement that made the change.
            try:
                hook(rowid, code, database, table)
            except Exception:
                log.exception("Update hook failed for row %s (code %s)", rowid, code)
        return None

    def _has_rowid(self, table: str) -> bool:
        with engine_call("update_hook.sync"):
            row = self._conn.execute(
                "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table,)
            ).fetchone()
        return row is not None and "WITHOUT ROWID" not in (row[0] or "").upper()

    def _trigger_name(self, table: str, suffix: str) -> str:
        return quote_identifier(f"{CHANGE_FUNCTION}_{table}_{suffix}")

    def _install(self, table: str) -> None:
        verbose = bool(self._hook and self._hook.verbose)
        names = f", 'main', {_sql_literal(table)}" if verbose else ""
        with engine_call("update_hook.install"):
            for suffix, event, ref, kind in _TRIGGER_EVENTS:
                trigger = self._trigger_name(table, suffix)
                self._conn.execute(f"DROP TRIGGER IF EXISTS temp.{trigger}")
                self._conn.execute(
                    f"CREATE TEMP TRIGGER {trigger} AFTER {event} ON main.{quote_identifier(table)} "
                    f"BEGIN SELECT {CHANGE_FUNCTION}({ref}.rowid, {int(kind)}{names}); END"
                )
        self._installed[table] = verbose

    def _drop(self, table: str) -> None:
        with engine_call("update_hook.drop"):
            for suffix, *_ in _TRIGGER_EVENTS:
                self._conn.execute(f"DROP TRIGGER IF EXISTS temp.{self._trigger_name(table, suffix)}")
        self._installed.pop(table, None)
