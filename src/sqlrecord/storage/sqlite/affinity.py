# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Storage affinity mapping between Python types and SQLite column types.

Every Python type maps to exactly one :class:`StorageAffinity`. Types without a
primitive affinity fall back to ``BLOB`` and are stored as JSON by the codec;
types with a registered :class:`ValueAdapter` are converted by the adapter
instead.
"""

from __future__ import annotations

import enum
import types
import typing
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from pathlib import Path, PurePath
from typing import Any

import numpy as np

__all__ = [
    "StorageAffinity",
    "ValueAdapter",
    "affinity_for",
    "affinity_from_declaration",
    "affinity_of_value",
    "register_adapter",
    "unregister_adapter",
    "adapter_for",
    "unwrap_optional",
]

_NONE_TYPE = type(None)


class StorageAffinity(enum.Enum):
    """Closed set of column storage categories."""

    PRIMARY_KEY_INTEGER = "primary_key_integer"
    INTEGER = "integer"
    FLOAT = "float"
    TEXT = "text"
    BLOB = "blob"
    NULL = "null"

    @property
    def declaration(self) -> str:
        return _DECLARATIONS[self]

    @property
    def python_type(self) -> type:
        """Plausible native type for a value stored with this affinity."""

        return _PYTHON_TYPES[self]

    @property
    def is_integer(self) -> bool:
        return self in (StorageAffinity.INTEGER, StorageAffinity.PRIMARY_KEY_INTEGER)


_DECLARATIONS = {
    StorageAffinity.PRIMARY_KEY_INTEGER: "INTEGER PRIMARY KEY",
    StorageAffinity.INTEGER: "INTEGER",
    StorageAffinity.FLOAT: "FLOAT",
    StorageAffinity.TEXT: "TEXT",
    StorageAffinity.BLOB: "BLOB",
    StorageAffinity.NULL: "NULL",
}

_PYTHON_TYPES: dict[StorageAffinity, type] = {
    StorageAffinity.PRIMARY_KEY_INTEGER: int,
    StorageAffinity.INTEGER: int,
    StorageAffinity.FLOAT: float,
    StorageAffinity.TEXT: str,
    StorageAffinity.BLOB: bytes,
    StorageAffinity.NULL: _NONE_TYPE,
}


# ---- Value adapters ---------------------------------------------------------


@dataclass(frozen=True)
class ValueAdapter:
    """Conversion pair for a Python type without a primitive affinity."""

    py_type: type
    affinity: StorageAffinity
    to_sql: Callable[[Any], Any]
    from_sql: Callable[[Any], Any]


_ADAPTERS: dict[type, ValueAdapter] = {}


def register_adapter(
    py_type: type,
    affinity: StorageAffinity,
    to_sql: Callable[[Any], Any],
    from_sql: Callable[[Any], Any],
) -> ValueAdapter:
    """Register (or replace) the adapter used for ``py_type`` and its subclasses."""

    if affinity in (StorageAffinity.PRIMARY_KEY_INTEGER, StorageAffinity.NULL):
        raise ValueError(f"Adapters cannot target {affinity.name} affinity")
    adapter = ValueAdapter(py_type, affinity, to_sql, from_sql)
    _ADAPTERS[py_type] = adapter
    return adapter


def unregister_adapter(py_type: type) -> None:
    _ADAPTERS.pop(py_type, None)


def adapter_for(tp: Any) -> ValueAdapter | None:
    """Return the adapter registered for ``tp`` (walking its MRO)."""

    if not isinstance(tp, type):
        return None
    for klass in tp.__mro__:
        found = _ADAPTERS.get(klass)
        if found is not None:
            return found
    return None


def _parse_datetime(value: Any) -> Any:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


def _parse_date(value: Any) -> Any:
    return date.fromisoformat(value) if isinstance(value, str) else value


def _parse_time(value: Any) -> Any:
    return time.fromisoformat(value) if isinstance(value, str) else value


# datetime is a date subclass; both are registered so the MRO walk finds the
# most specific one first.
register_adapter(datetime, StorageAffinity.TEXT, lambda v: v.isoformat(), _parse_datetime)
register_adapter(date, StorageAffinity.TEXT, lambda v: v.isoformat(), _parse_date)
register_adapter(time, StorageAffinity.TEXT, lambda v: v.isoformat(), _parse_time)
register_adapter(uuid.UUID, StorageAffinity.TEXT, str, lambda v: uuid.UUID(str(v)))
register_adapter(Decimal, StorageAffinity.TEXT, str, lambda v: Decimal(str(v)))
register_adapter(PurePath, StorageAffinity.TEXT, lambda v: v.as_posix(), lambda v: Path(v))


# ---- Type -> affinity -------------------------------------------------------


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Strip ``Annotated`` and ``Optional`` wrappers.

    Returns the wrapped type and whether ``None`` was part of the union.
    Unions of several non-None members are returned unchanged.
    """

    optional = False
    while True:
        origin = typing.get_origin(tp)
        if origin is typing.Annotated:
            tp = typing.get_args(tp)[0]
            continue
        if origin is typing.Union or origin is types.UnionType:
            members = [arg for arg in typing.get_args(tp) if arg is not _NONE_TYPE]
            if len(members) < len(typing.get_args(tp)):
                optional = True
            if len(members) == 1:
                tp = members[0]
                continue
        return tp, optional


def _literal_affinity(tp: Any) -> StorageAffinity:
    values = typing.get_args(tp)
    kinds = {_scalar_affinity(type(value)) for value in values}
    if len(kinds) == 1:
        kind = kinds.pop()
        if kind is not None:
            return kind
    return StorageAffinity.BLOB


def _scalar_affinity(tp: type) -> StorageAffinity | None:
    if issubclass(tp, enum.Enum):
        if issubclass(tp, int):
            return StorageAffinity.INTEGER
        if issubclass(tp, str):
            return StorageAffinity.TEXT
        members = {_scalar_affinity(type(member.value)) for member in tp}
        if len(members) == 1:
            return members.pop()
        return None
    if issubclass(tp, (bool, int, np.integer, np.bool_)):
        return StorageAffinity.INTEGER
    if issubclass(tp, (float, np.floating)):
        return StorageAffinity.FLOAT
    if issubclass(tp, str):
        return StorageAffinity.TEXT
    if issubclass(tp, (bytes, bytearray, memoryview)):
        return StorageAffinity.BLOB
    if tp is _NONE_TYPE:
        return StorageAffinity.NULL
    return None


def affinity_for(tp: Any, name: str | None = None) -> StorageAffinity:
    """Map a Python type (annotation) to its storage affinity.

    Integer-like types map to ``PRIMARY_KEY_INTEGER`` when the field is named
    ``id``. Any type without a primitive affinity or adapter maps to ``BLOB``.
    """

    tp, _ = unwrap_optional(tp)
    if typing.get_origin(tp) is typing.Literal:
        affinity = _literal_affinity(tp)
    elif isinstance(tp, type):
        adapter = adapter_for(tp)
        if adapter is not None:
            affinity = adapter.affinity
        else:
            affinity = _scalar_affinity(tp) or StorageAffinity.BLOB
    else:
        affinity = StorageAffinity.BLOB
    if name == "id" and affinity is StorageAffinity.INTEGER:
        return StorageAffinity.PRIMARY_KEY_INTEGER
    return affinity


def affinity_of_value(value: Any) -> StorageAffinity:
    """Storage class of a raw engine value."""

    if value is None:
        return StorageAffinity.NULL
    return _scalar_affinity(type(value)) or StorageAffinity.BLOB


def affinity_from_declaration(decl: str | None) -> StorageAffinity:
    """Apply SQLite's column affinity rules to a declared type string."""

    text = (decl or "").strip().upper()
    if "PRIMARY KEY" in text and "INT" in text:
        return StorageAffinity.PRIMARY_KEY_INTEGER
    if text == "NULL":
        return StorageAffinity.NULL
    if "INT" in text:
        return StorageAffinity.INTEGER
    if any(token in text for token in ("CHAR", "CLOB", "TEXT")):
        return StorageAffinity.TEXT
    if not text or "BLOB" in text:
        return StorageAffinity.BLOB
    if any(token in text for token in ("REAL", "FLOA", "DOUB")):
        return StorageAffinity.FLOAT
    return StorageAffinity.TEXT
