# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Record <-> row marshaling.

Encoding turns each persistable field into a primitive the engine can bind.
Values without a primitive affinity become JSON blobs (serialized with
pydantic). Decoding rebuilds a per-field intermediate from the row, parses
JSON blobs, validates every value against the field's annotation and finally
constructs the target record.
"""

from __future__ import annotations

import base64
import enum
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

import numpy as np
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError
from pydantic.errors import PydanticSchemaGenerationError, PydanticUserError
from pydantic_core import PydanticSerializationError

from sqlrecord.storage.errors import DecodeError, UnsupportedValueEncoding
from sqlrecord.storage.sqlite.affinity import StorageAffinity, adapter_for, affinity_for, unwrap_optional
from sqlrecord.storage.sqlite.reflect import FieldSpec, fields_of, fields_of_value

log = logging.getLogger(__name__)

__all__ = ["encode", "encode_value", "decode", "decode_value"]

T = TypeVar("T")

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_ADAPTER_CACHE: dict[Any, TypeAdapter] = {}
_ARBITRARY = ConfigDict(arbitrary_types_allowed=True)

# JSON envelope for raw bytes stored in a field that is not typed as bytes.
BYTES_KEY = "$bytes"


def _type_adapter(tp: Any) -> TypeAdapter:
    try:
        cached = _ADAPTER_CACHE.get(tp)
    except TypeError:  # unhashable annotation metadata
        return _build_adapter(tp)
    if cached is None:
        cached = _ADAPTER_CACHE[tp] = _build_adapter(tp)
    return cached


def _build_adapter(tp: Any) -> TypeAdapter:
    try:
        return TypeAdapter(tp, config=_ARBITRARY)
    except PydanticUserError:
        # Models, dataclasses and TypedDicts carry their own config.
        return TypeAdapter(tp)


def _validation_reason(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(part) for part in first.get("loc", ()))
    where = f" at {loc}" if loc else ""
    return f"{first.get('msg', 'invalid value')}{where}"


# ---- Encoding ---------------------------------------------------------------


def _unsupported(column: str | None, value: Any, reason: str, strict: bool) -> None:
    if strict:
        raise UnsupportedValueEncoding(column, type(value), reason)
    log.warning(
        "Binding NULL for column %r: cannot encode %s (%s)",
        column,
        type(value).__qualname__,
        reason,
    )
    return None


def encode_value(
    value: Any,
    logical_type: Any = None,
    *,
    column: str | None = None,
    strict: bool = False,
) -> Any:
    """Return the primitive bound for ``value``.

    Unencodable values bind as NULL (with a warning) unless ``strict``.
    """

    if value is None:
        return None
    adapter = adapter_for(type(value))
    if adapter is not None:
        return adapter.to_sql(value)
    if isinstance(value, enum.Enum):
        return encode_value(value.value, column=column, strict=strict)
    if isinstance(value, (bool, np.bool_)):
        return int(value)
    if isinstance(value, (int, np.integer)):
        number = int(value)
        if not INT64_MIN <= number <= INT64_MAX:
            return _unsupported(column, value, "integer exceeds 64 bits", strict)
        return number
    if isinstance(value, (float, np.floating)):
        return float(value)
    if isinstance(value, str):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        if _json_field(logical_type):
            payload = base64.b64encode(bytes(value)).decode("ascii")
            return json.dumps({BYTES_KEY: payload}).encode("utf-8")
        return bytes(value)

    target, _ = unwrap_optional(logical_type)
    if target is None or isinstance(target, str):
        target = type(value)
    try:
        return _type_adapter(target).dump_json(value, warnings=False)
    except (
        PydanticSerializationError,
        PydanticSchemaGenerationError,
        PydanticUserError,
        TypeError,
        ValueError,
    ) as exc:
        return _unsupported(column, value, str(exc), strict)


def encode(
    record: Any,
    fields: Sequence[FieldSpec] | None = None,
    *,
    strict: bool = False,
) -> list[tuple[str, Any]]:
    """Encode ``record`` into ordered ``(column, value)`` pairs."""

    specs = fields if fields is not None else fields_of_value(record)
    return [
        (
            spec.name,
            encode_value(spec.value_of(record), spec.logical_type, column=spec.name, strict=strict),
        )
        for spec in specs
    ]


# ---- Decoding ---------------------------------------------------------------


def _is_bytes_type(tp: Any) -> bool:
    return isinstance(tp, type) and issubclass(tp, (bytes, bytearray, memoryview))


def _json_field(logical_type: Any) -> bool:
    """Whether the column of ``logical_type`` holds JSON blobs."""

    if logical_type is None:
        return False
    target, _ = unwrap_optional(logical_type)
    if isinstance(target, str) or _is_bytes_type(target):
        return False
    return affinity_for(target) is StorageAffinity.BLOB


def decode_value(raw: Any, spec: FieldSpec) -> Any:
    """Resolve one raw column value into the field's native type."""

    target, optional = unwrap_optional(spec.logical_type)
    if raw is None:
        if optional or target is None or target is type(None):
            return None
        raise DecodeError(spec.name, "NULL stored for a non-optional field")

    adapter = adapter_for(target) if isinstance(target, type) else None
    if adapter is not None:
        try:
            return adapter.from_sql(raw)
        except (TypeError, ValueError) as exc:
            raise DecodeError(spec.name, str(exc)) from exc

    value = raw
    if isinstance(raw, bytes) and spec.affinity is StorageAffinity.BLOB and not _is_bytes_type(target):
        try:
            value = json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(spec.name, f"malformed JSON blob: {exc}") from exc
        if isinstance(value, dict) and value.keys() == {BYTES_KEY}:
            try:
                value = base64.b64decode(value[BYTES_KEY], validate=True)
            except (TypeError, ValueError) as exc:
                raise DecodeError(spec.name, f"malformed bytes blob: {exc}") from exc

    if isinstance(target, type) and issubclass(target, (np.integer, np.floating, np.bool_)):
        try:
            return target(value)
        except (TypeError, ValueError) as exc:
            raise DecodeError(spec.name, str(exc)) from exc
    if target is None or isinstance(target, str) or target is Any:
        return value
    try:
        return _type_adapter(spec.logical_type).validate_python(value)
    except ValidationError as exc:
        raise DecodeError(spec.name, _validation_reason(exc)) from exc
    except (PydanticSchemaGenerationError, PydanticUserError) as exc:
        raise DecodeError(spec.name, f"unsupported field type: {exc}") from exc


def decode(row: Mapping[str, Any], record_type: type[T]) -> T:
    """Build a ``record_type`` instance from a ``column -> raw value`` row.

    Columns the record does not declare are ignored. ``record_type=dict``
    returns the row as a plain dictionary.
    """

    if record_type is dict:
        return dict(row)  # type: ignore[return-value]
    specs = fields_of(record_type)
    if not specs:
        raise DecodeError(None, f"{record_type!r} declares no persistable fields")

    values: dict[str, Any] = {}
    for spec in specs:
        if spec.name not in row:
            if not spec.required:
                continue
            if not spec.optional:
                raise DecodeError(spec.name, "missing required field")
            values[spec.name] = None
            continue
        if row[spec.name] is None and not spec.required:
            # NULL in a defaulted field: the default applies.
            continue
        values[spec.name] = decode_value(row[spec.name], spec)

    build = getattr(record_type, "__record_decode__", None)
    try:
        if callable(build):
            return build(values)
        if isinstance(record_type, type) and issubclass(record_type, BaseModel):
            return record_type.model_validate(values)
        return record_type(**values)
    except ValidationError as exc:
        loc = exc.errors()[0].get("loc", ())
        column = str(loc[0]) if loc else None
        raise DecodeError(column, _validation_reason(exc)) from exc
    except TypeError as exc:
        raise DecodeError(None, f"cannot construct {record_type.__qualname__}: {exc}") from exc
