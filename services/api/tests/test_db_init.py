from pathlib import Path

import pytest
from sqlalchemy import inspect


def test_init_db_creates_tables(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "market_test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("MARKET_DB_AUTO_CREATE", "true")

    from services.api.app.db.database import get_engine
    from services.api.app.db.init_db import init_db

    init_db()

    inspector = inspect(get_engine())
    tables = set(inspector.get_table_names())

    assert "store_nodes" in tables
    assert "event_log" in tables


def test_init_db_respects_auto_create_flag(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    db_path = tmp_path / "nested" / "skipped.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{db_path}")
    monkeypatch.setenv("MARKET_DB_AUTO_CREATE", "false")

    from services.api.app.db.init_db import init_db

    init_db()

    assert not db_path.exists()


def test_engine_follows_database_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    from services.api.app.db.database import get_engine

    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path/'a.db'}")
    first = get_engine()
    assert get_engine() is first

    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path/'b.db'}")
    second = get_engine()
    assert second is not first
    assert second.url.database == str(tmp_path / "b.db")
