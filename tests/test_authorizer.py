import sqlite3
from dataclasses import dataclass

import pytest

from sqlrecord.storage.errors import EngineError
from sqlrecord.storage.sqlite.authorizer import StatementAuthorizer


@dataclass
class Person:
    id: int
    name: str


class NoDrops(StatementAuthorizer):
    def authorize_schema(self, action, arg1, arg2, database, source):
        if action == sqlite3.SQLITE_DROP_TABLE:
            return sqlite3.SQLITE_DENY
        return sqlite3.SQLITE_OK


class Recording(StatementAuthorizer):
    def __init__(self):
        self.seen = []

    def authorize(self, action, arg1, arg2, database, source):
        self.seen.append((action, arg1))
        return super().authorize(action, arg1, arg2, database, source)


def test_default_authorizer_allows_everything(db):
    db.set_authorizer(StatementAuthorizer())
    people = db.table("people")
    people.write(Person(1, "Jane"))
    db.execute("CREATE TABLE scratch (x)")
    db.execute("DROP TABLE scratch")
    assert people.read(Person) == [Person(1, "Jane")]


def test_custom_authorizer_can_veto_schema_actions(db):
    db.table("people").write(Person(1, "Jane"))
    db.set_authorizer(NoDrops())

    with pytest.raises(EngineError) as excinfo:
        db.execute("DROP TABLE people")
    assert "not authorized" in excinfo.value.message

    db.set_authorizer(None)
    db.execute("DROP TABLE people")
    assert db.list_tables() == []


def test_authorizer_sees_data_actions(db):
    recording = Recording()
    db.set_authorizer(recording)
    db.table("audited").write(Person(1, "Jane"))

    assert (sqlite3.SQLITE_INSERT, "audited") in recording.seen


def test_schema_table_deletes_bypass_authorize(db):
    recording = Recording()
    db.execute("CREATE TABLE scratch (x)")
    db.set_authorizer(recording)
    db.execute("DROP TABLE scratch")

    assert (sqlite3.SQLITE_DELETE, "sqlite_master") not in recording.seen
