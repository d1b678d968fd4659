import logging
import sqlite3

import pytest

from sqlrecord.storage.errors import EngineError
from sqlrecord.storage.sqlite.affinity import StorageAffinity
from sqlrecord.storage.sqlite.reflect import FieldSpec
from sqlrecord.storage.sqlite.schema import (
    TableSchemaManager,
    list_tables,
    live_columns,
    table_exists,
)
from sqlrecord.storage.sqlite.utils import open_db


def _specs(*pairs):
    return [FieldSpec.of(name, tp) for name, tp in pairs]


def _columns(conn, table):
    return [(col.name, col.affinity) for col in live_columns(conn, table)]


@pytest.fixture
def conn():
    connection = open_db(":memory:")
    yield connection
    connection.close()


def test_creates_table_with_primary_key_first(conn):
    manager = TableSchemaManager("people")
    added = manager.ensure_schema(conn, _specs(("name", str), ("id", int), ("age", int)))

    assert added == ["id", "name", "age"]
    assert table_exists(conn, "people")
    assert _columns(conn, "people") == [
        ("id", StorageAffinity.PRIMARY_KEY_INTEGER),
        ("name", StorageAffinity.TEXT),
        ("age", StorageAffinity.INTEGER),
    ]
    assert manager.schema.names() == ["id", "name", "age"]


def test_migration_is_idempotent(conn):
    manager = TableSchemaManager("people")
    fields = _specs(("id", int), ("name", str))
    manager.ensure_schema(conn, fields)
    before = _columns(conn, "people")

    assert manager.ensure_schema(conn, fields) == []
    assert TableSchemaManager("people").ensure_schema(conn, fields) == []
    assert _columns(conn, "people") == before


def test_superset_only_adds_new_columns(conn):
    manager = TableSchemaManager("people")
    manager.ensure_schema(conn, _specs(("id", int), ("name", str)))

    added = manager.ensure_schema(conn, _specs(("id", int), ("name", int), ("tag", str), ("weight", float)))

    assert added == ["tag", "weight"]
    assert _columns(conn, "people") == [
        ("id", StorageAffinity.PRIMARY_KEY_INTEGER),
        ("name", StorageAffinity.TEXT),
        ("tag", StorageAffinity.TEXT),
        ("weight", StorageAffinity.FLOAT),
    ]


def test_existing_table_is_introspected_not_recreated(conn):
    conn.execute("CREATE TABLE legacy (id INTEGER PRIMARY KEY, title VARCHAR(40))")
    conn.execute("INSERT INTO legacy (title) VALUES ('kept')")

    manager = TableSchemaManager("legacy")
    assert manager.ensure_schema(conn, _specs(("title", str), ("year", int))) == ["year"]
    assert conn.execute("SELECT title, year FROM legacy").fetchall() == [("kept", None)]


def test_non_integer_id_keeps_integer_primary_key(conn, caplog):
    manager = TableSchemaManager("things")
    with caplog.at_level(logging.WARNING):
        manager.ensure_schema(conn, _specs(("id", str), ("name", str)))

    assert _columns(conn, "things")[0] == ("id", StorageAffinity.PRIMARY_KEY_INTEGER)
    assert "INTEGER PRIMARY KEY" in caplog.text


def test_empty_fields_do_nothing(conn):
    assert TableSchemaManager("nothing").ensure_schema(conn, []) == []
    assert not table_exists(conn, "nothing")


def test_keyword_names_are_quoted(conn):
    manager = TableSchemaManager("order")
    manager.ensure_schema(conn, _specs(("id", int), ("group", str)))
    manager.ensure_schema(conn, _specs(("select", int)))

    assert [name for name, _ in _columns(conn, "order")] == ["id", "group", "select"]
    assert list_tables(conn) == ["order"]


def test_failed_addition_aborts_and_retry_completes(conn):
    manager = TableSchemaManager("people")
    manager.ensure_schema(conn, _specs(("id", int), ("name", str)))

    def deny_alter(action, *args):
        return sqlite3.SQLITE_DENY if action == sqlite3.SQLITE_ALTER_TABLE else sqlite3.SQLITE_OK

    conn.set_authorizer(deny_alter)
    with pytest.raises(EngineError) as excinfo:
        manager.ensure_schema(conn, _specs(("tag", str), ("weight", float)))
    assert excinfo.value.call_site == "ensure_schema"
    assert manager.schema.names() == ["id", "name"]

    conn.set_authorizer(None)
    assert manager.ensure_schema(conn, _specs(("tag", str), ("weight", float))) == ["tag", "weight"]
    assert manager.schema.names() == ["id", "name", "tag", "weight"]


def test_column_added_elsewhere_is_picked_up(tmp_path):
    path = str(tmp_path / "shared.sqlite")
    first = open_db(path)
    second = open_db(path)
    try:
        manager = TableSchemaManager("people")
        manager.ensure_schema(first, _specs(("id", int), ("name", str)))
        second.execute("ALTER TABLE people ADD COLUMN tag TEXT")

        assert manager.ensure_schema(first, _specs(("name", str), ("tag", str), ("age", int))) == ["age"]
        assert manager.schema.names() == ["id", "name", "tag", "age"]
    finally:
        first.close()
        second.close()
