# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Field discovery for record types.

A record type describes its persistable fields once; the result is cached in a
type-level registry. Supported contracts, checked in this order:

* an explicit registration through :func:`register_record`;
* a ``__record_fields__()`` classmethod returning :class:`FieldSpec` objects or
  ``(name, type)`` pairs;
* dataclasses (``field(metadata={"transient": True})`` excludes a field,
  ``ClassVar`` and ``init=False`` fields are never persisted);
* pydantic models (``Field(exclude=True)`` excludes a field).

Mappings written directly are described from their current items.
"""

from __future__ import annotations

import dataclasses
import logging
import operator
import typing
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from sqlrecord.storage.sqlite.affinity import StorageAffinity, affinity_for, unwrap_optional

log = logging.getLogger(__name__)

__all__ = [
    "FieldSpec",
    "fields_of",
    "fields_of_value",
    "register_record",
    "clear_registry",
    "TRANSIENT",
]

TRANSIENT = "transient"


@dataclass(frozen=True)
class FieldSpec:
    """One persistable field of a record type."""

    name: str
    affinity: StorageAffinity
    logical_type: Any = None
    accessor: Callable[[Any], Any] | None = field(default=None, compare=False, repr=False)
    # ``None`` is part of the annotation (``Optional[X]``, ``X | None``).
    optional: bool = False
    # The record has no default, so decoding needs a value for it.
    required: bool = True

    def value_of(self, record: Any) -> Any:
        if self.accessor is not None:
            return self.accessor(record)
        if isinstance(record, Mapping):
            return record.get(self.name)
        return getattr(record, self.name)

    @classmethod
    def of(
        cls,
        name: str,
        logical_type: Any,
        *,
        accessor: Callable[[Any], Any] | None = None,
        required: bool = True,
    ) -> FieldSpec:
        """Build a spec from a name and annotation."""

        _, optional = unwrap_optional(logical_type)
        return cls(
            name=name,
            affinity=affinity_for(logical_type, name),
            logical_type=logical_type,
            accessor=accessor or operator.attrgetter(name),
            optional=optional,
            required=required,
        )


_REGISTRY: dict[type, tuple[FieldSpec, ...]] = {}


def register_record(record_type: type, fields: Iterable[FieldSpec | tuple]) -> tuple[FieldSpec, ...]:
    """Register the persistable fields of ``record_type`` explicitly."""

    specs = _normalize(fields)
    _REGISTRY[record_type] = specs
    return specs


def clear_registry() -> None:
    """Forget every cached or registered description (useful for tests)."""

    _REGISTRY.clear()


def fields_of(record_type: type) -> tuple[FieldSpec, ...]:
    """Return the ordered persistable fields of ``record_type``.

    The result is computed once per type. A type that exposes no supported
    contract yields an empty tuple, meaning there is nothing to migrate.
    """

    cached = _REGISTRY.get(record_type)
    if cached is not None:
        return cached

    describe = getattr(record_type, "__record_fields__", None)
    if callable(describe):
        specs = _normalize(describe())
    elif dataclasses.is_dataclass(record_type):
        specs = _dataclass_fields(record_type)
    elif isinstance(record_type, type) and issubclass(record_type, BaseModel):
        specs = _model_fields(record_type)
    else:
        log.debug("No persistable fields for %r", record_type)
        specs = ()

    _REGISTRY[record_type] = specs
    return specs


def fields_of_value(record: Any) -> tuple[FieldSpec, ...]:
    """Describe a record instance; mappings are described from their items."""

    if isinstance(record, Mapping):
        return tuple(
            FieldSpec.of(str(key), type(value), accessor=operator.itemgetter(key))
            for key, value in record.items()
        )
    return fields_of(type(record))


# ---- Contracts --------------------------------------------------------------


def _normalize(fields: Iterable[FieldSpec | tuple]) -> tuple[FieldSpec, ...]:
    specs: list[FieldSpec] = []
    seen: set[str] = set()
    for item in fields:
        if isinstance(item, FieldSpec):
            spec = item
        else:
            name, logical_type, *rest = item
            spec = FieldSpec.of(name, logical_type, accessor=rest[0] if rest else None)
        if spec.name in seen:
            log.warning("Duplicate record field %r ignored", spec.name)
            continue
        seen.add(spec.name)
        specs.append(spec)
    return tuple(specs)


def _type_hints(record_type: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(record_type, include_extras=True)
    except (NameError, TypeError) as exc:
        log.debug("Could not resolve annotations of %r: %s", record_type, exc)
        return {}


def _dataclass_fields(record_type: type) -> tuple[FieldSpec, ...]:
    hints = _type_hints(record_type)
    specs = []
    for f in dataclasses.fields(record_type):
        if not f.init or f.metadata.get(TRANSIENT):
            continue
        required = f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
        specs.append(FieldSpec.of(f.name, hints.get(f.name, f.type), required=required))
    return tuple(specs)


def _model_fields(record_type: type[BaseModel]) -> tuple[FieldSpec, ...]:
    specs = []
    for name, info in record_type.model_fields.items():
        if info.exclude:
            continue
        specs.append(FieldSpec.of(name, info.annotation, required=info.is_required()))
    return tuple(specs)
