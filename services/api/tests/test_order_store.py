from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from services.api.app.services.lifecycle_errors import StoreUnavailableError
from services.api.app.services.order_store_base import (
    OrderStore,
    SnapshotPublisher,
    paths_overlap,
)
from services.api.app.services.order_store_memory import InMemoryOrderStore
from sqlalchemy.exc import OperationalError


def _sql_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> OrderStore:
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'store.db'}")
    monkeypatch.setenv("MARKET_DB_AUTO_CREATE", "true")

    from services.api.app.db.init_db import init_db
    from services.api.app.services.order_store_sql import SqlOrderStore

    init_db()
    return SqlOrderStore()


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> OrderStore:
    if request.param == "memory":
        return InMemoryOrderStore()
    return _sql_store(tmp_path, monkeypatch)


ORDER = {
    "seller_id": "seller-1",
    "status": "PLACED",
    "items": [{"product_id": "P1", "quantity": 2}],
    "buyer_profile": {"id": "u-1", "anonymous": False},
}


def test_write_then_read_round_trips_nested_values(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("orders/seller-1/20250116/o1", ORDER)

        assert await store.read("orders/seller-1/20250116/o1") == ORDER
        assert await store.read("orders/seller-1/20250116/o1/status") == "PLACED"
        assert await store.read_children("orders/seller-1/20250116") == {"o1": ORDER}
        assert await store.read("orders/seller-1/20250116/missing") is None
        assert await store.read_children("orders/seller-2") == {}

    asyncio.run(run())


def test_write_replaces_whole_subtree(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("buyer_profile/u-1", {"display_name": "Ana", "email_address": "a@x"})
        await store.write("buyer_profile/u-1", {"display_name": "Ana B"})

        assert await store.read("buyer_profile/u-1") == {"display_name": "Ana B"}

    asyncio.run(run())


def test_field_write_keeps_siblings(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("orders/seller-1/20250116/o1", ORDER)
        await store.write("orders/seller-1/20250116/o1/status", "CANCELLED")

        record = await store.read("orders/seller-1/20250116/o1")
        assert record["status"] == "CANCELLED"
        assert record["items"] == ORDER["items"]

    asyncio.run(run())


def test_none_and_empty_values_are_not_stored(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("buyer_profile/u-1", {"display_name": "Ana", "placed_order_ids": {}})
        assert await store.read("buyer_profile/u-1") == {"display_name": "Ana"}

        await store.write("buyer_profile/u-1", None)
        assert await store.read("buyer_profile/u-1") is None

    asyncio.run(run())


def test_delete_removes_subtree_and_empty_parents(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("buyer_profile/u-1/placed_order_ids/20250116", "o1")
        await store.delete("buyer_profile/u-1/placed_order_ids/20250116")

        assert await store.read("buyer_profile/u-1") is None
        # Deleting something already gone is a no-op.
        await store.delete("buyer_profile/u-1/placed_order_ids/20250116")

    asyncio.run(run())


def test_paths_with_like_wildcards_stay_separate(store: OrderStore) -> None:
    async def run() -> None:
        await store.write("articles/s_1/a", {"product_id": "P1"})
        await store.write("articles/sx1/a", {"product_id": "P2"})

        assert await store.read_children("articles/s_1") == {"a": {"product_id": "P1"}}
        await store.delete("articles/s_1")
        assert await store.read_children("articles/sx1") == {"a": {"product_id": "P2"}}

    asyncio.run(run())


def test_allocate_key_is_unique(store: OrderStore) -> None:
    async def run() -> set[str]:
        return {await store.allocate_key("orders/seller-1/20250116") for _ in range(20)}

    assert len(asyncio.run(run())) == 20


def test_watch_children_yields_initial_then_each_change(store: OrderStore) -> None:
    async def run() -> list[dict]:
        await store.write("orders/seller-1/20250116/o1", ORDER)
        seen: list[dict] = []
        watch = store.watch_children("orders/seller-1/20250116")

        seen.append(await anext(watch))
        await store.write("orders/seller-1/20250116/o2", ORDER)
        seen.append(await anext(watch))
        await store.write("orders/seller-1/20250116/o1/status", "CANCELLED")
        seen.append(await anext(watch))
        # Writes elsewhere do not wake the watcher.
        await store.write("orders/seller-1/20250123/o3", ORDER)
        await store.delete("orders/seller-1/20250116/o2")
        seen.append(await anext(watch))

        await watch.aclose()
        assert store.watcher_count("orders/seller-1/20250116") == 0
        return seen

    seen = asyncio.run(run())

    assert [sorted(s) for s in seen] == [["o1"], ["o1", "o2"], ["o1", "o2"], ["o1"]]
    assert seen[2]["o1"]["status"] == "CANCELLED"


def test_watchers_get_independent_copies(store: OrderStore) -> None:
    async def run() -> None:
        first = store.watch_children("orders/seller-1")
        second = store.watch_children("orders/seller-1")
        assert await anext(first) == {}
        assert await anext(second) == {}

        await store.write("orders/seller-1/20250116/o1", ORDER)
        a = await anext(first)
        b = await anext(second)
        a["20250116"]["o1"]["status"] = "MUTATED"
        assert b["20250116"]["o1"]["status"] == "PLACED"

        await first.aclose()
        await second.aclose()

    asyncio.run(run())


def test_paths_overlap() -> None:
    assert paths_overlap("orders/s", "orders/s/20250116/o1")
    assert paths_overlap("orders/s/20250116", "orders/s")
    assert paths_overlap("orders/s", "orders/s")
    assert not paths_overlap("orders/s", "orders/s2/20250116")
    assert not paths_overlap("orders/s/20250116", "orders/s/20250123/o1")


def test_sql_store_wraps_database_errors() -> None:
    from services.api.app.services.order_store_sql import SqlOrderStore

    class _BrokenSession:
        def execute(self, *args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        def rollback(self) -> None:
            pass

        def close(self) -> None:
            pass

    store = SqlOrderStore(session_factory=_BrokenSession)

    with pytest.raises(StoreUnavailableError, match="read orders/seller-1"):
        asyncio.run(store.read("orders/seller-1"))


def test_publisher_needs_a_child_reader() -> None:
    with pytest.raises(TypeError):
        SnapshotPublisher()
