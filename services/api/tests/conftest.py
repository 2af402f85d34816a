from pathlib import Path

import pytest

from insight_engine import config


SCHEMA_PATH = Path(__file__).resolve().parents[3] / "db" / "schema.sql"


@pytest.fixture(autouse=True)
def default_config(tmp_path, monkeypatch):
    """Every test starts from the built-in defaults, never a developer's config.json."""
    monkeypatch.setenv("INSIGHT_ENGINE_CONFIG", str(tmp_path / "missing-config.json"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    config.reload_config()
    yield
    config.reload_config()


@pytest.fixture
def db_env(tmp_path, monkeypatch):
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test.db"))
    monkeypatch.setenv("SCHEMA_PATH", str(SCHEMA_PATH))
    from insight_engine import db as db_mod

    db_mod.init_db()
    return db_mod
