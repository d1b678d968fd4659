import logging

import pytest

from sqlrecord.core import config
from sqlrecord.core.config import DatabaseConfig
from sqlrecord.storage.database import Database, open_database


def test_defaults():
    cfg = DatabaseConfig.from_env()
    assert cfg == DatabaseConfig()
    assert cfg.journal_mode == "WAL"
    assert not cfg.strict_encoding


def test_features_from_environment(monkeypatch):
    monkeypatch.setenv("SQLRECORD_FEATURES", "strict_encoding, !foreign_keys, verbose-changes=on, shiny")
    config.reload()

    cfg = DatabaseConfig.from_env()
    assert cfg.strict_encoding
    assert not cfg.foreign_keys
    assert cfg.verbose_changes
    assert not cfg.strict_conditions
    assert config.is_enabled("shiny")
    assert not config.is_enabled("dull")
    assert config.is_enabled("dull", default=True)


def test_invalid_feature_values_are_ignored(monkeypatch, caplog):
    monkeypatch.setenv("SQLRECORD_FEATURES", "strict_encoding=maybe")
    config.reload()
    with caplog.at_level(logging.WARNING, logger="sqlrecord.core.config"):
        assert config.all_enabled() == {}
    assert "not a boolean" in caplog.text


def test_empty_flag_name_is_rejected():
    with pytest.raises(ValueError):
        config.is_enabled("")


def test_journal_mode_and_busy_timeout(monkeypatch, caplog):
    monkeypatch.setenv("SQLRECORD_JOURNAL_MODE", "truncate")
    monkeypatch.setenv("SQLRECORD_BUSY_TIMEOUT_MS", "-20")
    cfg = DatabaseConfig.from_env()
    assert cfg.journal_mode == "TRUNCATE"
    assert cfg.busy_timeout_ms == 0

    monkeypatch.setenv("SQLRECORD_JOURNAL_MODE", "sideways")
    monkeypatch.setenv("SQLRECORD_BUSY_TIMEOUT_MS", "soon")
    with caplog.at_level(logging.WARNING, logger="sqlrecord.core.config"):
        cfg = DatabaseConfig.from_env()
    assert cfg.journal_mode == "WAL"
    assert cfg.busy_timeout_ms == 5000
    assert "unknown journal mode" in caplog.text
    assert "not an integer" in caplog.text


def test_overrides_win(monkeypatch):
    monkeypatch.setenv("SQLRECORD_FEATURES", "strict_encoding")
    config.reload()
    cfg = DatabaseConfig.from_env(strict_encoding=False, busy_timeout_ms=10)
    assert not cfg.strict_encoding
    assert cfg.busy_timeout_ms == 10
    assert cfg.with_options(strict_conditions=True).strict_conditions


def test_pragmas():
    cfg = DatabaseConfig(busy_timeout_ms=250)
    assert cfg.pragmas() == {"foreign_keys": True, "busy_timeout_ms": 250, "journal_mode": "WAL"}
    assert "journal_mode" not in cfg.pragmas(in_memory=True)
    assert "journal_mode" not in cfg.with_options(journal_mode=None).pragmas()


def test_file_database_applies_pragmas(db_path):
    with Database(db_path, config=DatabaseConfig(busy_timeout_ms=1234)) as db:
        assert db.conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert db.conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert db.conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1234


def test_open_database_reads_environment(monkeypatch):
    monkeypatch.setenv("SQLRECORD_FEATURES", "strict_conditions")
    config.reload()
    with open_database(verbose_changes=True) as db:
        assert db.config.strict_conditions
        assert db.config.verbose_changes
        db.table("people").write({"id": 1, "name": "Jane"})
        with pytest.raises(ValueError):
            db.table("people").read(dict, "1 = 1")
