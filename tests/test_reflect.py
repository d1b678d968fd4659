from dataclasses import dataclass, field
from typing import ClassVar, Optional

from pydantic import BaseModel, Field

from sqlrecord.storage.sqlite.affinity import StorageAffinity
from sqlrecord.storage.sqlite.reflect import (
    TRANSIENT,
    FieldSpec,
    fields_of,
    fields_of_value,
    register_record,
)


@dataclass
class Sample:
    id: int
    label: str
    score: float = 0.0
    notes: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    cache: dict = field(default_factory=dict, metadata={TRANSIENT: True})
    derived: int = field(default=0, init=False)
    kind: ClassVar[str] = "sample"


class Reading(BaseModel):
    id: int | None = None
    value: float
    raw: bytes = b""
    scratch: str = Field(default="", exclude=True)


class Described:
    def __init__(self, id, title):
        self.id = id
        self.title = title

    @classmethod
    def __record_fields__(cls):
        return [("id", int), ("title", str), ("title", str)]


class Unsupported:
    pass


def _names(specs):
    return [spec.name for spec in specs]


def test_dataclass_fields_in_declaration_order():
    specs = fields_of(Sample)
    assert _names(specs) == ["id", "label", "score", "notes", "tags"]
    assert [spec.affinity for spec in specs] == [
        StorageAffinity.PRIMARY_KEY_INTEGER,
        StorageAffinity.TEXT,
        StorageAffinity.FLOAT,
        StorageAffinity.TEXT,
        StorageAffinity.BLOB,
    ]


def test_dataclass_optional_and_required_flags():
    by_name = {spec.name: spec for spec in fields_of(Sample)}
    assert by_name["label"].required
    assert not by_name["score"].required
    assert by_name["notes"].optional
    assert not by_name["label"].optional


def test_fields_are_computed_once_per_type():
    assert fields_of(Sample) is fields_of(Sample)


def test_pydantic_model_excludes_excluded_fields():
    specs = fields_of(Reading)
    assert _names(specs) == ["id", "value", "raw"]
    assert specs[0].affinity is StorageAffinity.PRIMARY_KEY_INTEGER
    assert specs[2].affinity is StorageAffinity.BLOB
    assert not specs[0].required
    assert specs[1].required


def test_record_fields_hook_is_used_and_deduplicated():
    specs = fields_of(Described)
    assert _names(specs) == ["id", "title"]
    assert specs[1].value_of(Described(1, "x")) == "x"


def test_unsupported_type_has_nothing_to_migrate():
    assert fields_of(Unsupported) == ()


def test_explicit_registration_wins():
    class Custom:
        def __init__(self):
            self.payload = {"a": 1}

    register_record(Custom, [FieldSpec.of("payload", dict, accessor=lambda r: r.payload)])
    specs = fields_of(Custom)
    assert _names(specs) == ["payload"]
    assert specs[0].value_of(Custom()) == {"a": 1}


def test_mapping_records_are_described_from_items():
    specs = fields_of_value({"id": 3, "name": "Jane", "score": 1.5, "extra": None})
    assert _names(specs) == ["id", "name", "score", "extra"]
    assert [spec.affinity for spec in specs] == [
        StorageAffinity.PRIMARY_KEY_INTEGER,
        StorageAffinity.TEXT,
        StorageAffinity.FLOAT,
        StorageAffinity.NULL,
    ]
    assert specs[1].value_of({"name": "Judy"}) == "Judy"
