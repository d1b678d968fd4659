# sqlrecord
# Copyright © 2025 Osvaldo J. Vega Rodríguez
# Licensed under CC BY-NC-SA 4.0 International
# http://creativecommons.org/licenses/by-nc-sa/4.0/

"""
SQLite building blocks: affinity mapping, field reflection, schema
reconciliation, record codec, SQL builders, statements, change hooks,
history tables, custom functions and the pandas bridge.
"""

from __future__ import annotations

from sqlrecord.storage.sqlite.affinity import StorageAffinity, register_adapter
from sqlrecord.storage.sqlite.events import ChangeKind, HookBox, RowChange
from sqlrecord.storage.sqlite.queries import And, Condition, Or, Predicate, Raw
from sqlrecord.storage.sqlite.reflect import FieldSpec, fields_of, register_record
from sqlrecord.storage.sqlite.statement import Statement

__all__ = [
    "StorageAffinity",
    "register_adapter",
    "ChangeKind",
    "HookBox",
    "RowChange",
    "And",
    "Condition",
    "Or",
    "Predicate",
    "Raw",
    "FieldSpec",
    "fields_of",
    "register_record",
    "Statement",
]
