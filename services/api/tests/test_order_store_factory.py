from pathlib import Path

import pytest
from services.api.app.services.audit_log import MemoryAuditLog, SqlAuditLog, get_audit_log
from services.api.app.services.order_store_factory import get_order_store


def test_get_order_store_defaults_to_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MARKET_STORE_BACKEND", raising=False)
    store = get_order_store()
    assert store.backend == "memory"
    assert get_order_store() is store


def test_get_order_store_sql(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'factory.db'}")
    monkeypatch.setenv("MARKET_DB_AUTO_CREATE", "true")
    monkeypatch.setenv("MARKET_STORE_BACKEND", "sql")

    store = get_order_store()
    assert store.backend == "sql"
    assert get_order_store() is store
    assert isinstance(get_audit_log(), SqlAuditLog)


def test_get_order_store_rejects_unknown(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MARKET_STORE_BACKEND", "nope")
    with pytest.raises(ValueError, match="Unknown MARKET_STORE_BACKEND"):
        get_order_store()
    with pytest.raises(ValueError, match="Unknown MARKET_STORE_BACKEND"):
        get_audit_log()


def test_get_audit_log_defaults_to_memory(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MARKET_STORE_BACKEND", raising=False)
    assert isinstance(get_audit_log(), MemoryAuditLog)
