# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
Custom SQL functions.

Scalar functions are plain callables. Aggregates are classes with ``step``
and ``finalize``; window functions additionally implement ``inverse`` and
``value``. An exception raised inside a function aborts the statement that
called it and surfaces as :class:`~sqlrecord.storage.errors.EngineError`.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from typing import Any, Protocol

from sqlrecord.storage.sqlite.utils import engine_call

log = logging.getLogger(__name__)

__all__ = [
    "AggregateFunction",
    "WindowFunction",
    "add_function",
    "add_aggregate_function",
    "add_window_function",
    "remove_function",
]


class AggregateFunction(Protocol):
    def step(self, *values: Any) -> None: ...

    def finalize(self) -> Any: ...


class WindowFunction(AggregateFunction, Protocol):
    def inverse(self, *values: Any) -> None: ...

    def value(self) -> Any: ...


def add_function(
    conn: sqlite3.Connection,
    name: str,
    fn: Callable[..., Any],
    arity: int = -1,
    *,
    deterministic: bool = True,
) -> None:
    """Register a scalar SQL function (``arity=-1`` accepts any count)."""

    with engine_call(f"add_function({name})"):
        conn.create_function(name, arity, fn, deterministic=deterministic)
    log.debug("Added SQL function %s/%d", name, arity)


def add_aggregate_function(
    conn: sqlite3.Connection,
    name: str,
    aggregate: type[AggregateFunction],
    arity: int = -1,
) -> None:
    with engine_call(f"add_aggregate_function({name})"):
        conn.create_aggregate(name, arity, aggregate)
    log.debug("Added SQL aggregate %s/%d", name, arity)


def add_window_function(
    conn: sqlite3.Connection,
    name: str,
    window: type[WindowFunction],
    arity: int = -1,
) -> None:
    """Register an aggregate window function, usable with ``OVER (...)``."""

    with engine_call(f"add_window_function({name})"):
        conn.create_window_function(name, arity, window)
    log.debug("Added SQL window function %s/%d", name, arity)


def remove_function(conn: sqlite3.Connection, name: str, arity: int = -1) -> None:
    """Unregister a function previously added with the same name and arity."""

    with engine_call(f"remove_function({name})"):
        conn.create_function(name, arity, None)
    log.debug("Removed SQL function %s/%d", name, arity)
