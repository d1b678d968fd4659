import pytest

from sqlrecord.core import config
from sqlrecord.core.config import DatabaseConfig
from sqlrecord.storage.database import Database


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch):
    for name in ("SQLRECORD_FEATURES", "SQLRECORD_JOURNAL_MODE", "SQLRECORD_BUSY_TIMEOUT_MS"):
        monkeypatch.delenv(name, raising=False)
    config.reload()
    yield
    config.reload()


@pytest.fixture
def db():
    database = Database()
    yield database
    database.close()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "records.sqlite"


@pytest.fixture
def file_db(db_path):
    database = Database(db_path, config=DatabaseConfig(journal_mode="DELETE"))
    yield database
    database.close()
