import codecs

import pytest

from sqlrecord.storage.errors import EngineError


def _first(statement):
    return statement.column_value(0)


class Longest:
    def __init__(self):
        self.best = None

    def step(self, value):
        if value is not None and (self.best is None or len(value) > len(self.best)):
            self.best = value

    def finalize(self):
        return self.best


class SumInt:
    def __init__(self):
        self.count = 0

    def step(self, value):
        self.count += value

    def inverse(self, value):
        self.count -= value

    def value(self):
        return self.count

    def finalize(self):
        return self.count


def test_scalar_function(db):
    db.add_function("rot13", lambda text: codecs.encode(text, "rot13"), 1)
    assert db.read("SELECT rot13(?)", _first, ("hello",)) == ["uryyb"]


def test_variadic_function(db):
    db.add_function("count_args", lambda *args: len(args))
    assert db.read("SELECT count_args(1, 2, 3), count_args()", lambda s: (s.column_value(0), s.column_value(1))) == [
        (3, 0)
    ]


def test_removed_function_is_unknown(db):
    db.add_function("rot13", lambda text: codecs.encode(text, "rot13"), 1)
    db.remove_function("rot13", 1)
    with pytest.raises(EngineError) as excinfo:
        db.read("SELECT rot13('x')", _first)
    assert "no such function" in excinfo.value.message


def test_raising_function_surfaces_as_engine_error(db):
    def explode(value):
        raise RuntimeError("boom")

    db.add_function("explode", explode, 1)
    with pytest.raises(EngineError):
        db.read("SELECT explode(1)", _first)


def test_aggregate_function(db):
    db.execute("CREATE TABLE words (word TEXT)")
    for word in ("a", "abcd", "ab", None):
        db.execute("INSERT INTO words VALUES (?)", (word,))
    db.add_aggregate_function("longest", Longest, 1)

    assert db.read("SELECT longest(word) FROM words", _first) == ["abcd"]


def test_window_function(db):
    db.execute("CREATE TABLE t3 (x TEXT, y INTEGER)")
    for x, y in [("a", 4), ("b", 5), ("c", 3), ("d", 8), ("e", 1)]:
        db.execute("INSERT INTO t3 VALUES (?, ?)", (x, y))
    db.add_window_function("sumint", SumInt, 1)

    rows = db.read(
        "SELECT x, sumint(y) OVER (ORDER BY x ROWS BETWEEN 1 PRECEDING AND 1 FOLLOWING) FROM t3 ORDER BY x",
        lambda s: (s.column_value(0), s.column_value(1)),
    )
    assert rows == [("a", 9), ("b", 12), ("c", 16), ("d", 12), ("e", 9)]


def test_read_rolls_back_its_transaction(db):
    db.execute("CREATE TABLE t (x)")
    db.read("SELECT * FROM t", _first)
    assert not db.conn.in_transaction

    with db.transaction():
        db.execute("INSERT INTO t VALUES (1)")
        assert db.read("SELECT x FROM t", _first) == [1]
        assert db.conn.in_transaction
    assert db.read("SELECT x FROM t", _first) == [1]
