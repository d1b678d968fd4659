# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
SQL text and parameter builders.

Builders are pure: they never touch the engine. Filters may be given as
structured conditions (values are always bound as parameters), as a mapping
of equality tests, or as a raw SQL string. Raw strings are inserted verbatim;
callers must never build them from untrusted input.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Union

from sqlrecord.storage.sqlite.utils import quote_identifier

__all__ = [
    "Query",
    "Condition",
    "Predicate",
    "And",
    "Or",
    "Raw",
    "Filter",
    "compile_filter",
    "upsert",
    "select",
    "delete",
    "recall",
    "history_table_name",
    "create_history_table",
    "format_timestamp",
    "HISTORY_SUFFIX",
    "TIMESTAMP_COLUMN",
]

HISTORY_SUFFIX = "_history"
TIMESTAMP_COLUMN = "timestamp"


@dataclass(frozen=True)
class Query:
    """SQL text plus the parameters bound to its placeholders, in order."""

    sql: str
    params: tuple[Any, ...] = ()


# ---- Conditions -------------------------------------------------------------


class Condition:
    """Base class of structured filter expressions."""

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        raise NotImplementedError

    def __and__(self, other: Condition) -> And:
        return And(self, other)

    def __or__(self, other: Condition) -> Or:
        return Or(self, other)


_OPERATORS = {"=", "!=", "<>", "<", "<=", ">", ">=", "LIKE", "NOT LIKE", "IN", "NOT IN"}


@dataclass(frozen=True)
class Predicate(Condition):
    """``field <op> value`` with the value bound as a parameter."""

    field: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        op = self.op.strip().upper()
        if op == "==":
            op = "="
        if op not in _OPERATORS:
            raise ValueError(f"Unsupported operator {self.op!r}")
        object.__setattr__(self, "op", op)

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        column = quote_identifier(self.field)
        if self.value is None:
            if self.op == "=":
                return f"{column} IS NULL", ()
            if self.op in ("!=", "<>"):
                return f"{column} IS NOT NULL", ()
        if self.op in ("IN", "NOT IN"):
            values = tuple(self.value)
            if not values:
                # Empty membership: IN () is always false, NOT IN () always true.
                return ("0" if self.op == "IN" else "1"), ()
            marks = ", ".join("?" for _ in values)
            return f"{column} {self.op} ({marks})", values
        return f"{column} {self.op} ?", (self.value,)


@dataclass(frozen=True)
class _Compound(Condition):
    parts: tuple[Condition, ...] = field(default_factory=tuple)
    joiner: str = "AND"

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        if not self.parts:
            return ("1" if self.joiner == "AND" else "0"), ()
        texts: list[str] = []
        params: list[Any] = []
        for part in self.parts:
            text, values = part.to_sql()
            texts.append(f"({text})")
            params.extend(values)
        return f" {self.joiner} ".join(texts), tuple(params)


class And(_Compound):
    def __init__(self, *parts: Condition) -> None:
        super().__init__(tuple(parts), "AND")


class Or(_Compound):
    def __init__(self, *parts: Condition) -> None:
        super().__init__(tuple(parts), "OR")


@dataclass(frozen=True)
class Raw(Condition):
    """A caller-supplied SQL fragment, passed through verbatim."""

    text: str
    params: tuple[Any, ...] = ()

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        return self.text, tuple(self.params)


Filter = Union[None, str, Mapping[str, Any], Condition]


def compile_filter(where: Filter, *, allow_raw: bool = True) -> tuple[str | None, tuple[Any, ...]]:
    """Turn any accepted filter form into ``(sql, params)``."""

    if where is None:
        return None, ()
    if isinstance(where, str):
        if not allow_raw:
            raise ValueError("Raw SQL conditions are disabled; pass a Condition or mapping")
        return where, ()
    if isinstance(where, Condition):
        return where.to_sql()
    if isinstance(where, Mapping):
        if not where:
            return None, ()
        return And(*(Predicate(str(key), "=", value) for key, value in where.items())).to_sql()
    raise TypeError(f"Unsupported filter type: {type(where).__name__}")


def _limit_clause(limit: int | None) -> str:
    if limit is None:
        return ""
    return f" LIMIT {int(limit)}"


# ---- Statements -------------------------------------------------------------


def upsert(table: str, columns: Sequence[tuple[str, Any]]) -> Query:
    """Insert a row, or update every non-id column when ``id`` already exists.

    Placeholders are numbered so the update-set reuses the insert values.
    """

    if not columns:
        raise ValueError("upsert requires at least one column")
    names = [name for name, _ in columns]
    params = tuple(value for _, value in columns)
    marks = [f"?{index}" for index in range(1, len(columns) + 1)]
    quoted = [quote_identifier(name) for name in names]

    update_cols = [q for q, name in zip(quoted, names) if name != "id"]
    update_vals = [m for m, name in zip(marks, names) if name != "id"]
    if not update_cols:
        conflict = "DO NOTHING"
    elif len(update_cols) == 1:
        conflict = f"DO UPDATE SET {update_cols[0]} = {update_vals[0]}"
    else:
        conflict = f"DO UPDATE SET ({', '.join(update_cols)}) = ({', '.join(update_vals)})"

    sql = (
        f"INSERT INTO {quote_identifier(table)} ({', '.join(quoted)}) "
        f"VALUES ({', '.join(marks)}) ON CONFLICT(id) {conflict}"
    )
    return Query(sql, params)


def select(
    table: str,
    where: Filter = None,
    limit: int | None = None,
    *,
    allow_raw: bool = True,
) -> Query:
    condition, params = compile_filter(where, allow_raw=allow_raw)
    sql = f"SELECT * FROM {quote_identifier(table)}"
    if condition:
        sql += f" WHERE {condition}"
    sql += _limit_clause(limit)
    return Query(sql, params)


def delete(table: str, row_id: Any) -> Query:
    return Query(f"DELETE FROM {quote_identifier(table)} WHERE id = ?", (row_id,))


def history_table_name(table: str) -> str:
    return f"{table}{HISTORY_SUFFIX}"


def format_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, as the history triggers store it."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def recall(
    table: str,
    as_of: datetime,
    where: Filter = None,
    limit: int | None = None,
    *,
    allow_raw: bool = True,
) -> Query:
    """Snapshots from the history table recorded at or before ``as_of``."""

    condition, params = compile_filter(where, allow_raw=allow_raw)
    sql = (
        f"SELECT * FROM {quote_identifier(history_table_name(table))} "
        f"WHERE {TIMESTAMP_COLUMN} <= ?"
    )
    if condition:
        sql += f" AND ({condition})"
    sql += f" ORDER BY {TIMESTAMP_COLUMN} DESC"
    sql += _limit_clause(limit)
    return Query(sql, (format_timestamp(as_of), *params))


def create_history_table(table: str) -> Query:
    return Query(
        f"CREATE TABLE IF NOT EXISTS {quote_identifier(history_table_name(table))} AS "
        f"SELECT *, NULL AS {TIMESTAMP_COLUMN} FROM {quote_identifier(table)} WHERE 0"
    )
