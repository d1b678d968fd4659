import gc
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
from pydantic import BaseModel

from sqlrecord.core.config import DatabaseConfig
from sqlrecord.storage.database import Database
from sqlrecord.storage.errors import ConnectionClosedError, UnsupportedValueEncoding
from sqlrecord.storage.sqlite.queries import Predicate
from sqlrecord.storage.sqlite.reflect import TRANSIENT


@dataclass
class Person:
    id: int
    name: str


@dataclass
class PersonII:
    id: int
    name: str
    tag: str


@dataclass
class Note:
    id: Optional[int]
    text: str
    scratch: str = field(default="", metadata={TRANSIENT: True})


@dataclass
class Blob:
    id: int
    payload: Optional[object] = None


class Order(BaseModel):
    id: int
    items: list[str]
    placed: datetime
    total: float = 0.0


class Empty:
    pass


def _people(db):
    people = db.table("people")
    people.write(Person(1, "Jane"))
    people.write(Person(2, "Judy"))
    return people


def test_write_then_read_in_insertion_order(db):
    people = _people(db)
    assert people.read(Person, limit=10) == [Person(1, "Jane"), Person(2, "Judy")]


def test_extra_field_migrates_and_old_type_still_reads(db):
    people = _people(db)
    people.write(PersonII(1, "George", "tagged"))

    assert "tag" in people.schema
    assert people.read_by_id(PersonII, 1) == PersonII(1, "George", "tagged")
    assert people.read(Person) == [Person(1, "George"), Person(2, "Judy")]


def test_upsert_updates_existing_rows(db):
    people = _people(db)
    people.write(Person(2, "Judith"))
    people.write(Person(3, "Joan"))

    assert db.conn.execute("SELECT COUNT(*) FROM people").fetchone()[0] == 3
    assert people.read_by_id(Person, 2) == Person(2, "Judith")


def test_delete_and_missing_ids(db):
    people = _people(db)
    assert people.delete(1) == 1
    assert people.read_by_id(Person, 1) is None
    assert people.delete(1) == 0
    assert people.delete(99) == 0
    assert people.read(Person) == [Person(2, "Judy")]


def test_write_without_id_assigns_row_id(db):
    notes = db.table("notes")
    first = notes.write(Note(None, "first", scratch="ignored"))
    second = notes.write(Note(None, "second"))

    assert (first, second) == (1, 2)
    assert notes.read_by_id(Note, 2) == Note(2, "second")
    assert "scratch" not in notes.schema


def test_filters(db):
    people = _people(db)
    people.write(Person(3, "Ann"))

    assert people.read(Person, {"name": "Judy"}) == [Person(2, "Judy")]
    assert people.read(Person, Predicate("name", "LIKE", "J%")) == [Person(1, "Jane"), Person(2, "Judy")]
    assert people.read(Person, "id > 1", limit=1) == [Person(2, "Judy")]


def test_strict_conditions_reject_raw_text():
    with Database(config=DatabaseConfig(strict_conditions=True)) as db:
        people = _people(db)
        with pytest.raises(ValueError):
            people.read(Person, "id = 1")
        assert people.read(Person, Predicate("id", "=", 1)) == [Person(1, "Jane")]


def test_unencodable_values_bind_null_unless_strict(db):
    blobs = db.table("blobs")
    blobs.write(Blob(1, object()))
    assert blobs.read_by_id(Blob, 1) == Blob(1, None)

    with Database(config=DatabaseConfig(strict_encoding=True)) as strict:
        with pytest.raises(UnsupportedValueEncoding):
            strict.table("blobs").write(Blob(1, object()))


def test_pydantic_records_round_trip(db):
    order = Order(id=5, items=["pen", "ink"], placed=datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc), total=4.5)
    orders = db.table("orders")
    orders.write(order)
    assert orders.read(Order) == [order]


def test_mapping_records(db):
    things = db.table("things")
    things.write({"id": 1, "label": "a", "weight": 2.5})
    things.write({"id": 2, "label": "b", "color": "red"})

    rows = things.read(dict)
    assert rows == [
        {"id": 1, "label": "a", "weight": 2.5, "color": None},
        {"id": 2, "label": "b", "weight": None, "color": "red"},
    ]


def test_record_without_fields_cannot_be_written(db):
    with pytest.raises(ValueError):
        db.table("empty").write(Empty())
    assert db.table("empty").ensure_schema(Empty) == []


def test_missing_table_reads_empty(db):
    assert db.table("nobody").read(Person) == []
    assert db.table("nobody").delete(1) == 0


def test_table_handles_are_cached(db):
    assert db.table("people") is db.table("people")
    with pytest.raises(ValueError):
        db.table("")


def test_keyword_table_and_column_names(db):
    @dataclass
    class Slot:
        id: int
        group: str
        order: int

    table = db.table("select")
    table.write(Slot(1, "a", 2))
    assert table.read(Slot) == [Slot(1, "a", 2)]


def test_handle_fails_after_close():
    db = Database()
    people = _people(db)
    db.close()
    with pytest.raises(ConnectionClosedError):
        people.read(Person)
    with pytest.raises(ConnectionClosedError):
        db.table("people")


def test_handle_does_not_keep_database_alive():
    db = Database()
    people = _people(db)
    ref = weakref.ref(db)
    db.close()
    del db
    gc.collect()

    assert ref() is None
    with pytest.raises(ConnectionClosedError):
        people.write(Person(3, "Ann"))


def test_file_database_persists(db_path):
    with Database(db_path) as db:
        _people(db)
    with Database(db_path) as db:
        assert db.list_tables() == ["people"]
        assert db.table("people").read(Person) == [Person(1, "Jane"), Person(2, "Judy")]


@dataclass
class Holder:
    id: int
    payload: Optional[Any] = None


@pytest.mark.parametrize("payload", [b"\x00\x01raw", b"\xff\xfe", b"1", b'{"a": 1}'])
def test_raw_bytes_in_untyped_fields_round_trip(db, payload):
    holders = db.table("holders")
    holders.write(Holder(1, payload))
    assert holders.read_by_id(Holder, 1) == Holder(1, payload)


def test_untyped_fields_still_store_json(db):
    holders = db.table("holders")
    holders.write(Holder(1, {"a": [1, 2]}))
    assert holders.read_by_id(Holder, 1) == Holder(1, {"a": [1, 2]})


def test_frame_of_missing_table_is_empty(db):
    frame = db.table("nobody").frame()
    assert frame.empty
    assert list(frame.columns) == []
