from __future__ import annotations

import os

from services.api.app.services.order_store_base import OrderStore
from services.api.app.services.order_store_memory import InMemoryOrderStore

_STORES: dict[tuple[str, str], OrderStore] = {}


def get_order_store() -> OrderStore:
    """Select the order store based on env vars.

    Defaults to the in-memory store so tests and local dev need no database.
    Stores are cached per backend (and DATABASE_URL for sql) because watchers
    only see writes made through the same instance.
    """

    mode = os.getenv("MARKET_STORE_BACKEND", "memory").strip().lower()

    if mode == "memory":
        key = (mode, "")
        if key not in _STORES:
            _STORES[key] = InMemoryOrderStore()
        return _STORES[key]

    if mode == "sql":
        from services.api.app.db.database import get_engine
        from services.api.app.db.init_db import init_db
        from services.api.app.services.order_store_sql import SqlOrderStore

        key = (mode, str(get_engine().url))
        if key not in _STORES:
            init_db()
            _STORES[key] = SqlOrderStore()
        return _STORES[key]

    raise ValueError(f"Unknown MARKET_STORE_BACKEND={mode!r}. Expected memory or sql.")


def reset_order_stores() -> None:
    _STORES.clear()
