from __future__ import annotations

from collections.abc import Iterator

import pytest


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Fresh stores, baskets and audit log per test; memory backend unless a test opts in."""
    from services.api.app.db.database import dispose_engine
    from services.api.app.services.audit_log import reset_audit_logs
    from services.api.app.services.basket_store import basket_store
    from services.api.app.services.order_store_factory import reset_order_stores

    monkeypatch.setenv("MARKET_STORE_BACKEND", "memory")
    monkeypatch.setenv("MARKET_DB_AUTO_CREATE", "false")
    for var in (
        "MARKET_PICKUP_DAY",
        "MARKET_DEADLINE_DAY",
        "MARKET_DEADLINE_TIME",
        "MARKET_TIMEZONE",
        "MARKET_STRICT_MERGE",
        "MARKET_SELLER_ID",
        "MARKET_PICKUP_DATE_COUNT",
    ):
        monkeypatch.delenv(var, raising=False)

    reset_order_stores()
    reset_audit_logs()
    basket_store.reset()
    yield
    reset_order_stores()
    reset_audit_logs()
    basket_store.reset()
    dispose_engine()
