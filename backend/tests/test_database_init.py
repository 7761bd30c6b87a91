import pytest
from sqlalchemy import inspect

from farmauth.config import settings
from farmauth.core import database


def test_off_mode_leaves_schema_alone(db, monkeypatch):
    monkeypatch.setattr(settings, "DB_INIT_MODE", "off")
    database.init_db()


def test_unknown_mode_is_rejected(monkeypatch):
    monkeypatch.setattr(settings, "DB_INIT_MODE", "sometimes")
    with pytest.raises(RuntimeError, match="Unknown DB_INIT_MODE"):
        database.init_db()


def test_create_all_builds_tables(db, monkeypatch):
    database.Base.metadata.drop_all(bind=database.engine)
    monkeypatch.setattr(settings, "DB_INIT_MODE", "create_all")
    database.init_db()
    tables = set(inspect(database.engine).get_table_names())
    assert {"users", "refresh_tokens", "csrf_tokens"} <= tables


def test_migrate_mode_requires_history(db, monkeypatch):
    monkeypatch.setattr(settings, "DB_INIT_MODE", "migrate")
    with pytest.raises(RuntimeError, match="no migration history"):
        database.init_db()
